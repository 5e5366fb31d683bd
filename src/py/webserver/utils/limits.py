from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


REASONABLE_LIMITS: dict[LimitType, int] = {
	# Each open connection and each served file uses a descriptor
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(
	scope: LimitType, ratio: float = 1.0, *, maximum: int | None = 0
) -> int | bool:
	"""Raises the soft limit of the given scope towards its hard limit,
	capped to a reasonable maximum. Returns the new soft limit, or `False`
	when it could not be changed."""
	lm = limit(scope)
	try:
		target = int(lm.soft + ratio * (lm.hard - lm.soft))
		# Darwin reports huge hard limits that lead to OverflowErrors.
		maximum = REASONABLE_LIMITS.get(scope) if maximum == 0 else maximum
		if maximum:
			target = min(maximum, target)
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except (ValueError, OSError):
		return False


# EOF
