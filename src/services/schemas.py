# src/services/schemas.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class QuoteResponse:
    quote: Dict[str, Any]
    profile: Dict[str, Any]
    policy_id: Optional[int] = None
    billing: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "quote": self.quote,
            "profile": self.profile,
            "billing": self.billing,
            "warnings": list(self.warnings),
        }
