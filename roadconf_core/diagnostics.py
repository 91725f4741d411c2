"""Diagnostics - Warnings collected during one synthesis pass.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Tuple

from roadconf_core.resources.virtualserver import ResourceRef


class Warnings:
    """Append-only warnings keyed by the resource that caused them.

    Resources and messages keep insertion order, so the same input always
    yields the same warnings.

    Usage:
        warnings = Warnings()
        warnings.add(vs.ref, "Policy default/rl is missing or invalid")
        for ref, messages in warnings.items():
            ...
    """

    def __init__(self):
        self._by_resource: Dict[ResourceRef, List[str]] = {}

    def add(self, ref: ResourceRef, message: str) -> None:
        self._by_resource.setdefault(ref, []).append(message)

    def extend(self, ref: ResourceRef, messages: Iterable[str]) -> None:
        for message in messages:
            self.add(ref, message)

    def merge(self, other: "Warnings") -> None:
        for ref, messages in other.items():
            self.extend(ref, messages)

    def get(self, ref: ResourceRef) -> List[str]:
        return list(self._by_resource.get(ref, []))

    def items(self) -> Iterator[Tuple[ResourceRef, List[str]]]:
        for ref, messages in self._by_resource.items():
            yield ref, list(messages)

    def all(self) -> List[str]:
        return [message for messages in self._by_resource.values() for message in messages]

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._by_resource.values())

    def __bool__(self) -> bool:
        return bool(self._by_resource)

    def __contains__(self, ref: ResourceRef) -> bool:
        return ref in self._by_resource


__all__ = ["Warnings"]
