"""
Governance Messages

Structured decisions maintainers sign: releases, module approvals and
budget decisions. Each variant is a frozen dataclass; the set is closed
and every consumer switches over it explicitly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from .errors import MessageFormatError

MAX_AMOUNT = 2 ** 64 - 1


class TargetType(str, Enum):
    """Everything an envelope can attest to."""
    RELEASE = "release"
    MODULE_APPROVAL = "module_approval"
    BUDGET_DECISION = "budget_decision"
    BINARY = "binary"
    BUNDLE = "bundle"
    CHECKSUMS = "checksums"

    @property
    def is_artifact(self) -> bool:
        return self in ARTIFACT_TYPES


ARTIFACT_TYPES = frozenset({TargetType.BINARY, TargetType.BUNDLE, TargetType.CHECKSUMS})
MESSAGE_TYPES = frozenset({TargetType.RELEASE, TargetType.MODULE_APPROVAL, TargetType.BUDGET_DECISION})


def _require_str(name: str, value) -> None:
    if not isinstance(value, str):
        raise MessageFormatError(f"{name} must be a string, got {type(value).__name__}")


@dataclass(frozen=True)
class Release:
    """Approval of a tagged release at a specific commit."""
    version: str
    commit_hash: str

    target_type = TargetType.RELEASE

    def __post_init__(self):
        _require_str("version", self.version)
        _require_str("commit_hash", self.commit_hash)

    def description(self) -> str:
        return f"Release {self.version} (commit {self.commit_hash})"


@dataclass(frozen=True)
class ModuleApproval:
    """Approval of a module at a given version."""
    module_name: str
    version: str

    target_type = TargetType.MODULE_APPROVAL

    def __post_init__(self):
        _require_str("module_name", self.module_name)
        _require_str("version", self.version)

    def description(self) -> str:
        return f"Module approval: {self.module_name} {self.version}"


@dataclass(frozen=True)
class BudgetDecision:
    """
    Allocation of funds for a purpose.

    ``amount`` is denominated in satoshis and must fit in an unsigned
    64-bit integer.
    """
    amount: int
    purpose: str

    target_type = TargetType.BUDGET_DECISION

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise MessageFormatError(f"amount must be an integer, got {type(self.amount).__name__}")
        if self.amount < 0 or self.amount > MAX_AMOUNT:
            raise MessageFormatError(f"amount out of range: {self.amount}")
        _require_str("purpose", self.purpose)

    def description(self) -> str:
        return f"Budget decision: {self.amount} sats for {self.purpose}"


GovernanceMessage = Union[Release, ModuleApproval, BudgetDecision]
