from __future__ import annotations

from types import MappingProxyType
from typing import Any, Container, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


class _QdiscParams(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class FqParams(_QdiscParams):
    limit: Optional[int] = Field(None, ge=1, description="Max packets queued (p)")
    flow_limit: Optional[int] = Field(None, ge=1, description="Max packets per flow (p)")
    quantum: Optional[int] = Field(None, ge=1, description="Credit per round (bytes)")
    initial_quantum: Optional[int] = Field(None, ge=1, description="Credit for new flows (bytes)")
    buckets: Optional[int] = Field(None, ge=1, le=2**18, description="Hash table size")
    orphan_mask: Optional[int] = Field(None, ge=0)


class FqCodelParams(_QdiscParams):
    limit: Optional[int] = Field(None, ge=1)
    flows: Optional[int] = Field(None, ge=1, le=65536)
    quantum: Optional[int] = Field(None, ge=1)
    memory_limit: Optional[int] = Field(None, ge=1, description="bytes")
    drop_batch: Optional[int] = Field(None, ge=1)


class CakeParams(_QdiscParams):
    memlimit: Optional[int] = Field(None, ge=1, description="bytes")
    overhead: Optional[int] = Field(None, ge=-64, le=256)
    mpu: Optional[int] = Field(None, ge=0, le=256)


class SfqParams(_QdiscParams):
    limit: Optional[int] = Field(None, ge=1)
    perturb: Optional[int] = Field(None, ge=0, description="seconds")
    quantum: Optional[int] = Field(None, ge=1)
    divisor: Optional[int] = Field(None, ge=1, le=65536)


# Algorithm name -> accepted integer parameters.
QDISC_PARAMS: dict[str, type[_QdiscParams]] = {
    "fq": FqParams,
    "fq_codel": FqCodelParams,
    "cake": CakeParams,
    "sfq": SfqParams,
}


class QdiscPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    algorithm: str = Field(..., description="Root qdisc kind, e.g. fq")
    # (name, value) pairs in declaration order; a mapping is accepted on input
    params: tuple[tuple[str, int], ...] = Field(default_factory=tuple, description="Parameter name -> integer value")

    @field_validator("params", mode="before")
    @classmethod
    def _params_from_mapping(cls, v: Any) -> Any:
        if isinstance(v, Mapping):
            return tuple(v.items())
        return v

    @model_validator(mode="after")
    def _check_params(self) -> "QdiscPolicy":
        model = QDISC_PARAMS.get(self.algorithm)
        if model is None:
            raise ValueError(f"Unsupported qdisc '{self.algorithm}'. Supported: {', '.join(sorted(QDISC_PARAMS))}.")
        names = [name for name, _ in self.params]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate {self.algorithm} parameters: {', '.join(names)}")
        try:
            model(**dict(self.params))
        except ValidationError as e:
            problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            raise ValueError(f"Invalid {self.algorithm} parameters: {problems}") from None
        return self

    def tc_args(self) -> list[str]:
        """Arguments after `tc qdisc add dev X root`, in declaration order."""
        args = [self.algorithm]
        for name, value in self.params:
            args.extend([name, str(int(value))])
        return args

    @property
    def param_map(self) -> Mapping[str, int]:
        """Read-only view of the parameters."""
        return MappingProxyType(dict(self.params))


class CongestionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidates: tuple[str, ...] = Field(..., min_length=1, description="Most preferred first")

    @field_validator("candidates")
    @classmethod
    def _check_candidates(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        names = tuple(c.strip() for c in v)
        if any(not c or any(ch.isspace() for ch in c) for c in names):
            raise ValueError("Congestion control names must be non-empty single words.")
        if len(set(names)) != len(names):
            raise ValueError("Congestion control candidates must be unique.")
        return names

    @property
    def preferred(self) -> str:
        return self.candidates[0]


class DesiredState(BaseModel):
    model_config = ConfigDict(frozen=True)

    qdisc: QdiscPolicy
    congestion: CongestionPolicy


def select_candidate(available: Container[str], preference: Iterable[str]) -> Optional[str]:
    """First entry of `preference` present in `available`, else None."""
    for name in preference:
        if name in available:
            return name
    return None


DEFAULT_POLICY = DesiredState(
    qdisc=QdiscPolicy(algorithm="fq", params={"limit": 20000, "flow_limit": 200}),
    congestion=CongestionPolicy(candidates=("bbrplus", "bbr")),
)
