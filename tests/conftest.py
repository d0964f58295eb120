from typing import List

import pytest

from stream_logger import MemoryFileOutput, StreamLogger


@pytest.fixture
def lines() -> List[str]:
    return []


@pytest.fixture
def memory_file() -> MemoryFileOutput:
    return MemoryFileOutput()


@pytest.fixture
def logger(lines, memory_file) -> StreamLogger:
    log = StreamLogger(output=lines.append, file_output=memory_file)
    yield log
    log.close()
