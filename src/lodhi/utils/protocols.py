from typing import Protocol, runtime_checkable


@runtime_checkable
class HasCigar(Protocol):
    """Protocol for objects that carry an edit script (e.g. alignment records)."""
    @property
    def cigar(self) -> 'Cigar': ...
