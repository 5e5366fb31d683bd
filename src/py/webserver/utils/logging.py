import sys
import time
from enum import Enum
from typing import NamedTuple, Any, TextIO
from contextvars import ContextVar
from .term import Term

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="webserver")


class LogType(Enum):
	Message = 0  # A general information message
	Event = 20  # An event, like a request or a shutdown


class LogLevel(Enum):
	Info = 10
	Warning = 30
	Error = 40  # A managed error
	Exception = 50  # An un-managed error


LOG_LEVEL_COLOR = {
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}


class LogEntry(NamedTuple):
	origin: str
	time: float
	type: LogType = LogType.Message
	level: LogLevel = LogLevel.Info
	message: str | None = None
	name: str | None = None
	value: Any = None
	context: dict[str, Any] | None = None
	icon: str | None = None


def output() -> TextIO:
	# Resolved on each call so that captured streams (tests) are honoured
	return sys.stderr


def formatData(value: Any) -> str:
	if value is None or value == () or value == [] or value == {}:
		return ""
	elif isinstance(value, dict):
		return " ".join(
			f"{Term.BOLD}{k}{Term.RESET}={formatData(v)}" for k, v in value.items()
		)
	elif isinstance(value, list) or isinstance(value, tuple):
		return ",".join(formatData(v) for v in value)
	elif isinstance(value, str):
		return repr(value) if " " in value else value
	elif isinstance(value, bool):
		return "✓" if value else "✗"
	elif isinstance(value, float):
		return f"{value:0.2f}"
	else:
		return str(value)


def send(entry: LogEntry) -> LogEntry:
	icon: str = f" {entry.icon}" if entry.icon else ""
	clr: str = Term.Color(LOG_LEVEL_COLOR[entry.level])
	context: str = formatData(entry.context)
	suffix: str = f" {context}" if context else ""
	out = output()
	if entry.type == LogType.Event:
		value: str = formatData(entry.value)
		out.write(
			f"{clr}{Term.BOLD}[{entry.origin}] {entry.name}{Term.RESET}{f' {value}' if value else ''}{suffix}{Term.RESET}\n"
		)
	else:
		out.write(
			f"{clr}{Term.BOLD}[{entry.origin}]{Term.RESET}{icon} {entry.message}{suffix}{Term.RESET}\n"
		)
	out.flush()
	return entry


def entry(
	*,
	origin: str | None = None,
	type: LogType = LogType.Message,
	level: LogLevel = LogLevel.Info,
	message: str | None = None,
	name: str | None = None,
	value: Any = None,
	context: dict[str, Any],
	icon: str | None = None,
) -> LogEntry:
	return LogEntry(
		origin=origin or LogOrigin.get(),
		time=time.time(),
		type=type,
		level=level,
		message=message,
		name=name,
		value=value,
		context=context,
		icon=icon,
	)


def info(
	message: str, *, origin: str | None = None, icon: str | None = None, **context: Any
) -> LogEntry:
	return send(entry(message=message, origin=origin, context=context, icon=icon))


def warning(
	message: str, *, origin: str | None = None, icon: str | None = None, **context: Any
) -> LogEntry:
	return send(
		entry(
			message=message,
			level=LogLevel.Warning,
			origin=origin,
			context=context,
			icon=icon,
		)
	)


def error(
	message: str,
	code: int | str | None,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: Any,
) -> LogEntry:
	return send(
		entry(
			message=message,
			value=code,
			level=LogLevel.Error,
			origin=origin,
			context=context if code is None else {"Code": code} | context,
			icon=icon,
		)
	)


def event(
	event: str, value: Any = None, *, origin: str | None = None, **context: Any
) -> LogEntry:
	return send(
		entry(
			name=event,
			value=value,
			type=LogType.Event,
			origin=origin,
			context=context,
		)
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	try:
		stream = output()
		stream.write(
			f"!!! EXCP {f'{message}: [{exception.__class__.__name__}] {exception}' if message else f'[{exception.__class__.__name__}] {exception}'}\n"
		)
		tb = exception.__traceback__
		while tb:
			code = tb.tb_frame.f_code
			stream.write(
				f"... in {code.co_name:15s} at {tb.tb_lineno:4d} in {code.co_filename}\n",
			)
			tb = tb.tb_next
		stream.flush()
	except Exception:  # nosec: B110
		# Swallow all exceptions so that this function can be called from an exception
		# handler safely.
		pass

	# Return the exception so that this function can be called like:
	#   raise exception(e)
	return exception


# EOF
