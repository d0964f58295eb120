from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
from dataclasses import dataclass, field, fields
from datetime import datetime
from threading import RLock, Thread, get_ident
from copy import copy
from pathlib import Path
import io
import json
import os
import sys


# ==================== Constants ====================

ERROR_TAG = "error"
WARNING_TAG = "warning"
INFO_TAG = "info"
DEBUG_TAG = "debug"

ALL_LEVELS = -1
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

INT_BITS = 64
UINT64_MASK = (1 << INT_BITS) - 1
INT64_SIGN_BIT = 1 << (INT_BITS - 1)


# ==================== Enums ====================

class NumFormat(Enum):
    """How integral values are rendered when appended"""
    DECIMAL = "d"
    HEX = "x"
    OCTAL = "o"
    BINARY = "b"


# ==================== Exceptions ====================

class StreamLoggerError(Exception):
    """Base exception for stream_logger"""


class SinkUnavailableError(StreamLoggerError):
    """The log file could not be opened"""

    def __init__(self, filename: str, reason: Optional[Exception] = None):
        self.filename = filename
        self.reason = reason
        message = f"Cannot open log file {filename}"
        if reason is not None:
            message += f": {reason}"
        super().__init__(message)


class ConfigError(StreamLoggerError):
    """Logger configuration is invalid"""


# ==================== Core Models ====================

class Unsigned(int):
    """
    Integer tagged as unsigned.

    Plain ints are formatted as signed 64-bit values; wrap a value in
    Unsigned to get the unsigned decimal rendering. The value is reduced
    to its 64-bit pattern on construction.
    """

    def __new__(cls, value: int):
        return super().__new__(cls, int(value) & UINT64_MASK)

    def __repr__(self) -> str:
        return f"Unsigned({int(self)})"


@dataclass
class MessageBuffer:
    """Message of one thread, collected until it is flushed"""
    created_at: datetime = field(default_factory=datetime.now)
    tag: str = ""
    message: str = ""
    level: int = 0
    show_time: bool = True

    @property
    def is_debug(self) -> bool:
        """Debug messages are only visible while debug output is enabled"""
        return self.tag == DEBUG_TAG

    def __repr__(self) -> str:
        return f"MessageBuffer(tag={self.tag!r}, level={self.level}, message={self.message!r})"


# ==================== Number Formatting ====================

def format_integral(value: int, num_format: Union[NumFormat, str] = NumFormat.DECIMAL,
                    unsigned: bool = False) -> str:
    """
    Render an integer with a fixed 64-bit width.

    Hex, octal and binary always show the unsigned bit pattern, so negative
    values come out in two's complement. Binary drops leading zeros; zero
    itself renders as "0".
    """
    num_format = NumFormat(num_format)
    bits = int(value) & UINT64_MASK

    if num_format == NumFormat.DECIMAL:
        if unsigned or not bits & INT64_SIGN_BIT:
            return str(bits)
        return str(bits - (1 << INT_BITS))

    if num_format == NumFormat.HEX:
        return format(bits, "x")

    if num_format == NumFormat.OCTAL:
        return format(bits, "o")

    return format(bits, "b")


def format_float(value: float) -> str:
    """Floats keep six fractional digits whatever the number format is"""
    return f"{value:f}"


def format_bool(value: bool) -> str:
    return "true" if value else "false"


# ==================== Strategy Pattern: Message Formatters ====================

class MessageFormatter(ABC):
    """
    Turns a buffer snapshot into the final text written to every output.

    The logger calls format() while holding its lock, so implementations
    need no locking of their own.
    """

    @abstractmethod
    def format(self, buffer: MessageBuffer) -> str:
        """Format a message buffer into a string"""
        pass


class DefaultFormatter(MessageFormatter):
    """Indent by level, then [ time ] and [ tag ], then the message"""

    def __init__(self, date_format: str = DEFAULT_DATE_FORMAT):
        self._date_format = date_format

    def get_date_format(self) -> str:
        return self._date_format

    def format(self, buffer: MessageBuffer) -> str:
        parts = [" " * buffer.level]

        if buffer.show_time:
            parts.append(f"[ {buffer.created_at.strftime(self._date_format)} ] ")

        if buffer.tag:
            parts.append(f"[ {buffer.tag} ] ")

        parts.append(buffer.message)
        return "".join(parts)


class CallbackFormatter(MessageFormatter):
    """Adapts a plain function to the formatter interface"""

    def __init__(self, format_func: Callable[[MessageBuffer], str]):
        self._format_func = format_func

    def format(self, buffer: MessageBuffer) -> str:
        return self._format_func(buffer)


# ==================== Outputs ====================

def console_out(message: str) -> None:
    """Default output: stdout, flushed after every message"""
    sys.stdout.write(message)
    sys.stdout.flush()


class FileOutput(ABC):
    """
    File side of the logger.

    All three methods are called with the logger lock held.
    """

    @abstractmethod
    def open_file(self, filename: str) -> None:
        """Open a new log file, raising OSError if that is not possible"""
        pass

    @abstractmethod
    def write_to_file(self, message: str) -> None:
        """Write a formatted message"""
        pass

    @abstractmethod
    def close_file(self) -> None:
        """Close the log file; closing twice is allowed"""
        pass


class TextFileOutput(FileOutput):
    """Writes messages to a plain text file, truncated when opened"""

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._filename: Optional[str] = None
        self._file = None

    def get_filename(self) -> Optional[str]:
        return self._filename

    def is_open(self) -> bool:
        return self._file is not None

    def open_file(self, filename: str) -> None:
        self.close_file()

        # Create directory if it doesn't exist
        directory = os.path.dirname(filename)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

        self._file = open(filename, "w", encoding=self._encoding)
        self._filename = filename

    def write_to_file(self, message: str) -> None:
        if not self._file:
            return

        self._file.write(message)
        self._file.flush()

    def close_file(self) -> None:
        if self._file:
            self._file.close()
            self._file = None


class MemoryFileOutput(FileOutput):
    """In-memory stand-in for a log file, mainly for tests"""

    def __init__(self, fail_on_open: bool = False):
        self._fail_on_open = fail_on_open
        self._filename: Optional[str] = None
        self._stream: Optional[io.StringIO] = None
        self._contents = ""
        self._open_count = 0

    def set_fail_on_open(self, fail: bool) -> None:
        self._fail_on_open = fail

    def get_filename(self) -> Optional[str]:
        return self._filename

    def get_open_count(self) -> int:
        return self._open_count

    def is_open(self) -> bool:
        return self._stream is not None

    def get_value(self) -> str:
        """Contents of the current file, or of the last one after closing"""
        if self._stream is not None:
            return self._stream.getvalue()
        return self._contents

    def open_file(self, filename: str) -> None:
        if self._fail_on_open:
            raise OSError(f"Cannot open {filename}")

        self.close_file()
        self._filename = filename
        self._stream = io.StringIO()
        self._contents = ""
        self._open_count += 1

    def write_to_file(self, message: str) -> None:
        if self._stream is None:
            return
        self._stream.write(message)

    def close_file(self) -> None:
        if self._stream is not None:
            self._contents = self._stream.getvalue()
            self._stream.close()
            self._stream = None


# ==================== Modifiers ====================

class Modifier(ABC):
    """One-shot token that calls a single logger operation when appended"""

    @abstractmethod
    def apply(self, logger: "StreamLogger") -> None:
        pass


class TagModifier(Modifier):
    def __init__(self, tag: str):
        self._tag = tag

    def get_tag(self) -> str:
        return self._tag

    def apply(self, logger: "StreamLogger") -> None:
        logger.set_tag(self._tag)

    def __repr__(self) -> str:
        return f"TagModifier({self._tag!r})"


class LevelModifier(Modifier):
    def __init__(self, level: int):
        self._level = level

    def get_level(self) -> int:
        return self._level

    def apply(self, logger: "StreamLogger") -> None:
        logger.set_level(self._level)

    def __repr__(self) -> str:
        return f"LevelModifier({self._level})"


class NumFormatModifier(Modifier):
    def __init__(self, num_format: Union[NumFormat, str]):
        self._num_format = NumFormat(num_format)

    def get_num_format(self) -> NumFormat:
        return self._num_format

    def apply(self, logger: "StreamLogger") -> None:
        logger.set_num_format(self._num_format)

    def __repr__(self) -> str:
        return f"NumFormatModifier({self._num_format.name})"


class EndLine(Modifier):
    """Terminates the message with a newline and flushes it"""

    def apply(self, logger: "StreamLogger") -> None:
        logger.put("\n")
        logger.flush()

    def __repr__(self) -> str:
        return "EndLine()"


lerror = TagModifier(ERROR_TAG)
lwarning = TagModifier(WARNING_TAG)
linfo = TagModifier(INFO_TAG)
ldebug = TagModifier(DEBUG_TAG)

ldec = NumFormatModifier(NumFormat.DECIMAL)
lhex = NumFormatModifier(NumFormat.HEX)
loct = NumFormatModifier(NumFormat.OCTAL)
lbin = NumFormatModifier(NumFormat.BINARY)

lendl = EndLine()


def ltag(tag: str) -> TagModifier:
    """Custom tag for the current message"""
    return TagModifier(tag)


def llevel(level: int) -> LevelModifier:
    """Level (and indentation) of the current message"""
    return LevelModifier(level)


# ==================== Logger ====================

Formatter = Union[MessageFormatter, Callable[[MessageBuffer], str]]


class StreamLogger:
    """
    Stream-style logger with one message buffer per thread.

    Every thread composes its own message with append() or the << operator
    and hands it over with flush(). One re-entrant lock guards the buffers,
    the global settings and all callbacks. The output callback, the
    formatter and the file output always run with that lock held, and
    because the lock is re-entrant they may call back into the logger.

    Usage:
        logger = StreamLogger()
        logger << linfo << "Loaded " << 3 << " files" << lendl
    """

    def __init__(self, output: Optional[Callable[[str], None]] = None,
                 formatter: Optional[Formatter] = None,
                 file_output: Optional[FileOutput] = None):
        self._lock = RLock()
        self._buffers: Dict[int, MessageBuffer] = {}

        self._output: Callable[[str], None] = output or console_out
        self._formatter: MessageFormatter = self._as_formatter(formatter or DefaultFormatter())
        self._file_output: FileOutput = file_output or TextFileOutput()

        self._log_to_file = False
        self._debug_enabled = False
        self._num_format = NumFormat.DECIMAL
        self._max_level: Optional[int] = None

    # ---------- lifecycle ----------

    def __enter__(self) -> "StreamLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Flush every pending message, then close the log file"""
        with self._lock:
            self.flush_all()
            self.close_log_file()

    def log_to_file(self, filename: str) -> None:
        """
        Also write every visible message to a file.

        Any open log file is closed first.

        Raises:
            SinkUnavailableError: if the file cannot be opened. File logging
            stays disabled in that case.
        """
        with self._lock:
            self.close_log_file()
            try:
                self._file_output.open_file(filename)
            except OSError as e:
                raise SinkUnavailableError(filename, e) from e
            self._log_to_file = True

    def close_log_file(self) -> None:
        """Stop writing to the log file. No effect if it is already closed."""
        with self._lock:
            self._log_to_file = False
            self._file_output.close_file()

    def is_logging_to_file(self) -> bool:
        with self._lock:
            return self._log_to_file

    # ---------- message composition ----------

    def append(self, *values: Any) -> "StreamLogger":
        """
        Append values to the calling thread's message.

        Accepts bool, int (Unsigned for unsigned rendering), float, str,
        modifier tokens and callables taking the logger.
        """
        with self._lock:
            for value in values:
                self._append_one(value)
        return self

    def __lshift__(self, value: Any) -> "StreamLogger":
        return self.append(value)

    def put(self, char: str) -> None:
        """Append a single character"""
        if len(char) != 1:
            raise ValueError(f"Expected a single character, got {char!r}")

        with self._lock:
            self._get_buffer().message += char

    def set_tag(self, tag: str) -> None:
        """Tag the current message; the tag "debug" makes it a debug message"""
        with self._lock:
            self._get_buffer().tag = tag

    def set_level(self, level: int) -> None:
        if level < 0:
            raise ValueError(f"Level must be >= 0, got {level}")

        with self._lock:
            self._get_buffer().level = level

    def show_timestamp(self, show: bool) -> None:
        with self._lock:
            self._get_buffer().show_time = show

    # ---------- global settings ----------

    def set_max_visible_level(self, level: Optional[int]) -> None:
        """Show only messages up to and including level. ALL_LEVELS or None shows all."""
        if level is None or level == ALL_LEVELS:
            max_level = None
        elif level < 0:
            raise ValueError(f"Level must be >= 0 or ALL_LEVELS, got {level}")
        else:
            max_level = level

        with self._lock:
            self._max_level = max_level

    def get_max_visible_level(self) -> Optional[int]:
        with self._lock:
            return self._max_level

    def enable_debug(self, enabled: bool) -> None:
        with self._lock:
            self._debug_enabled = enabled

    def is_debug_enabled(self) -> bool:
        with self._lock:
            return self._debug_enabled

    def set_num_format(self, num_format: Union[NumFormat, str]) -> None:
        """Number format for all threads; text already appended keeps its format"""
        num_format = NumFormat(num_format)
        with self._lock:
            self._num_format = num_format

    def get_num_format(self) -> NumFormat:
        with self._lock:
            return self._num_format

    # ---------- callbacks ----------

    def set_output_callback(self, output: Callable[[str], None]) -> None:
        with self._lock:
            self._output = output

    def set_formatter(self, formatter: Formatter) -> None:
        with self._lock:
            self._formatter = self._as_formatter(formatter)

    def set_file_output(self, file_output: FileOutput) -> None:
        """Replace the file output; an open log file is closed first"""
        with self._lock:
            self.close_log_file()
            self._file_output = file_output

    def get_lock(self):
        """The lock held while callbacks run, for custom outputs that share state"""
        return self._lock

    # ---------- flushing ----------

    def flush(self) -> None:
        """Write the calling thread's message and discard its buffer"""
        with self._lock:
            buffer = self._buffers.pop(get_ident(), None)
            if buffer is None:
                buffer = MessageBuffer()
            self._dispatch(buffer)

    def flush_all(self) -> None:
        """
        Write and discard the pending messages of all threads.

        Buffers are removed one at a time, so if an output raises, the
        messages not reached yet stay pending.
        """
        with self._lock:
            for ident in list(self._buffers):
                buffer = self._buffers.pop(ident, None)
                if buffer is not None:
                    self._dispatch(buffer)

    def get_pending_count(self) -> int:
        """Number of threads with an unflushed message"""
        with self._lock:
            return len(self._buffers)

    # ---------- convenience ----------

    def log(self, tag: str, *values: Any) -> None:
        """Compose and flush a whole tagged line in one call"""
        with self._lock:
            self.set_tag(tag)
            self.append(*values)
            self.append(lendl)

    def error(self, *values: Any) -> None:
        self.log(ERROR_TAG, *values)

    def warning(self, *values: Any) -> None:
        self.log(WARNING_TAG, *values)

    def info(self, *values: Any) -> None:
        self.log(INFO_TAG, *values)

    def debug(self, *values: Any) -> None:
        self.log(DEBUG_TAG, *values)

    # ---------- internals ----------

    @staticmethod
    def _as_formatter(formatter: Formatter) -> MessageFormatter:
        if isinstance(formatter, MessageFormatter):
            return formatter
        if callable(formatter):
            return CallbackFormatter(formatter)
        raise TypeError(f"Formatter must be a MessageFormatter or callable, got {type(formatter).__name__}")

    def _get_buffer(self) -> MessageBuffer:
        ident = get_ident()
        buffer = self._buffers.get(ident)
        if buffer is None:
            buffer = MessageBuffer()
            self._buffers[ident] = buffer
        return buffer

    def _append_one(self, value: Any) -> None:
        if isinstance(value, Modifier):
            value.apply(self)
            return

        # bool is a subclass of int, check it first
        if isinstance(value, bool):
            text = format_bool(value)
        elif isinstance(value, Unsigned):
            text = format_integral(value, self._num_format, unsigned=True)
        elif isinstance(value, int):
            text = format_integral(value, self._num_format)
        elif isinstance(value, float):
            text = format_float(value)
        elif isinstance(value, str):
            text = value
        elif callable(value):
            value(self)
            return
        else:
            raise TypeError(f"Cannot log value of type {type(value).__name__}")

        self._get_buffer().message += text

    def _is_visible(self, buffer: MessageBuffer) -> bool:
        if buffer.is_debug and not self._debug_enabled:
            return False
        return self._max_level is None or buffer.level <= self._max_level

    def _dispatch(self, buffer: MessageBuffer) -> None:
        if not self._is_visible(buffer):
            return

        message = self._formatter.format(copy(buffer))

        self._output(message)
        if self._log_to_file:
            self._file_output.write_to_file(message)


# ==================== Configuration ====================

@dataclass
class LoggerConfig:
    """Settings applied by configure_logger()"""
    max_level: Optional[int] = None
    debug_enabled: bool = False
    num_format: str = NumFormat.DECIMAL.value
    log_file: Optional[str] = None
    date_format: str = DEFAULT_DATE_FORMAT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggerConfig":
        """Build a config from a mapping; unknown keys are ignored"""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}

        if "num_format" in values:
            try:
                values["num_format"] = NumFormat(values["num_format"]).value
            except ValueError as e:
                raise ConfigError(f"Unknown number format: {values['num_format']!r}") from e

        max_level = values.get("max_level")
        if max_level is not None:
            if isinstance(max_level, bool) or not isinstance(max_level, int) or max_level < ALL_LEVELS:
                raise ConfigError(f"Invalid max_level: {max_level!r}")
            if max_level == ALL_LEVELS:
                values["max_level"] = None

        if "debug_enabled" in values and not isinstance(values["debug_enabled"], bool):
            raise ConfigError(f"debug_enabled must be true or false, got {values['debug_enabled']!r}")

        if "date_format" in values and not isinstance(values["date_format"], str):
            raise ConfigError(f"date_format must be a string, got {values['date_format']!r}")

        log_file = values.get("log_file")
        if log_file is not None and not isinstance(log_file, str):
            raise ConfigError(f"log_file must be a string, got {log_file!r}")

        return cls(**values)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "LoggerConfig":
        """Load a config from a JSON object; a missing file gives the defaults"""
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Expected a JSON object in {path}")

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ==================== Convenience Functions ====================

def configure_logger(config: Optional[LoggerConfig] = None,
                     output: Optional[Callable[[str], None]] = None,
                     file_output: Optional[FileOutput] = None,
                     **overrides: Any) -> StreamLogger:
    """
    Quick setup of a logger.

    Keyword overrides replace single fields of the config.

    Raises:
        ConfigError: if a field or override is invalid.
        SinkUnavailableError: if config.log_file cannot be opened.
    """
    config = config or LoggerConfig()

    unknown = set(overrides) - set(config.to_dict())
    if unknown:
        raise ConfigError(f"Unknown config fields: {', '.join(sorted(unknown))}")

    # overrides and hand-built configs get the same checks as loaded ones
    config = LoggerConfig.from_dict({**config.to_dict(), **overrides})

    logger = StreamLogger(
        output=output,
        formatter=DefaultFormatter(config.date_format),
        file_output=file_output
    )
    logger.set_max_visible_level(config.max_level)
    logger.enable_debug(config.debug_enabled)
    logger.set_num_format(config.num_format)

    if config.log_file:
        logger.log_to_file(config.log_file)

    return logger


# ==================== Demo Usage ====================

def demo_basic_logging():
    """Demo tags, levels and number formats"""
    print("=== Basic Logging Demo ===\n")

    with StreamLogger() as logger:
        logger.log_to_file("logs/Test.log")
        logger.enable_debug(True)
        logger.set_max_visible_level(5)

        logger << llevel(5) << ldebug << "Test " << lbin << Unsigned(0xF) << " Test " << True << lhex << 0xff << lendl
        logger << ldec << lerror << "Test" << lendl
        logger << linfo << "Test" << lendl
        logger << lwarning << "Test" << lendl
        logger << ltag("Custom Tag") << "Test" << lendl

    print()


def demo_number_formats():
    """Demo the four number formats"""
    print("\n=== Number Formats Demo ===\n")

    with StreamLogger() as logger:
        for modifier in (ldec, lhex, loct, lbin):
            logger.show_timestamp(False)
            logger << linfo << modifier << 42 << " " << -1 << " " << 3.5 << lendl

    print()


def demo_custom_callbacks():
    """Demo a custom formatter and output"""
    print("\n=== Custom Callbacks Demo ===\n")

    collected: List[str] = []

    def bracket_format(buffer: MessageBuffer) -> str:
        return f"<{buffer.tag or '-'}> {buffer.message}"

    with StreamLogger(output=collected.append, formatter=bracket_format,
                      file_output=MemoryFileOutput()) as logger:
        logger.info("collected ", 1)
        logger.warning("collected ", 2)

    for line in collected:
        print(line, end="")
    print()


def demo_multithreaded_logging():
    """Demo threads composing messages at the same time"""
    print("\n=== Multithreaded Logging Demo ===\n")

    logger = StreamLogger()

    def log_from_thread(thread_id: int):
        for i in range(3):
            logger.show_timestamp(False)
            logger << linfo << "Thread " << thread_id << ", message " << i << lendl

    threads = []
    for tid in range(3):
        thread = Thread(target=log_from_thread, args=(tid,))
        threads.append(thread)
        thread.start()

    for thread in threads:
        thread.join()

    logger.close()
    print()


def main():
    """Run all demos"""
    demo_basic_logging()
    demo_number_formats()
    demo_custom_callbacks()
    demo_multithreaded_logging()

    print("\n=== All Demos Complete ===")


if __name__ == "__main__":
    main()


# ## Key Design Decisions

# ### **Design Patterns Used:**

# 1. **Builder (stream style)**:
#    - Each thread builds its own MessageBuffer with append() / <<
#    - flush() hands the finished message to formatter and outputs

# 2. **Strategy Pattern**:
#    - **Formatters**: DefaultFormatter, CallbackFormatter
#    - **File outputs**: TextFileOutput, MemoryFileOutput

# 3. **Command Pattern**:
#    - Modifier tokens (lerror, llevel(n), lhex, lendl) call one logger operation

# ### **Thread Safety:**
# - One RLock guards buffers, global settings and callbacks
# - Callbacks run with the lock held and may re-enter the logger
# - Buffers are keyed by thread ident, so threads never share a message

# ### **Filtering:**
# ```
# visible = (debug_enabled or not is_debug) and (max_level is None or level <= max_level)
# ```
