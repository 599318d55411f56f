"""
Engine Errors

Business conditions (validation failures, conflicts, exhausted pools) are
returned as values inside an Outcome. Only corrupt input data raises.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
	VALIDATION_ERROR = "validation_error"
	SLOT_CONFLICT = "slot_conflict"
	NO_PROFESSIONAL_AVAILABLE = "no_professional_available"
	RECURRENCE_UNSATISFIABLE = "recurrence_unsatisfiable"
	CAPACITY_EXCEEDED = "capacity_exceeded"


@dataclass(frozen=True)
class EngineError:
	"""Error de negocio devuelto como valor."""

	code: ErrorCode
	message: str
	details: Dict[str, Any] = field(default_factory=dict)

	def as_dict(self) -> Dict[str, Any]:
		return {"code": self.code.value, "message": self.message, "details": dict(self.details)}


@dataclass(frozen=True)
class Outcome(Generic[T]):
	"""
	Resultado de una operación del engine.

	Exactamente uno de `value` o `error` es significativo: si `error` está
	presente la operación falló y `value` debe ignorarse.
	"""

	value: Optional[T] = None
	error: Optional[EngineError] = None

	@property
	def ok(self) -> bool:
		return self.error is None

	@classmethod
	def success(cls, value: T) -> "Outcome[T]":
		return cls(value=value)

	@classmethod
	def failure(cls, code: ErrorCode, message: str, **details: Any) -> "Outcome[T]":
		return cls(error=EngineError(code, message, details))


def validation_error(message: str, **details: Any) -> Outcome:
	return Outcome.failure(ErrorCode.VALIDATION_ERROR, message, **details)


class MalformedScheduleData(ValueError):
	"""
	Datos de agenda corruptos (horarios solapados, intervalos invertidos,
	zona horaria desconocida). Se propaga al caller como falla.
	"""
