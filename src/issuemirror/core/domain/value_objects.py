"""
Value Objects - Immutable identifiers used across the domain.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RepositoryRef:
    """
    Identity of a remote repository (owner + name).

    Two refs are equal when owner and name match exactly.
    """
    
    owner: str
    name: str
    
    def __post_init__(self) -> None:
        if not self.owner or not self.name:
            raise ValueError("Repository owner and name must be non-empty")
        if "/" in self.owner or "/" in self.name:
            raise ValueError(f"Invalid repository segment: {self.owner}/{self.name}")
    
    @classmethod
    def parse(cls, value: str) -> "RepositoryRef":
        """
        Parse an ``owner/name`` string.
        
        Raises:
            ValueError: If the value is not exactly two non-empty segments
        """
        parts = value.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid repository format: {value!r} (expected owner/name)")
        return cls(owner=parts[0], name=parts[1])
    
    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"
    
    def __str__(self) -> str:
        return self.full_name
