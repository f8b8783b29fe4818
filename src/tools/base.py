# src/tools/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class ScanOptions:
    """Already-validated scan parameters."""
    target: str
    format: str = "html"
    port: Optional[str] = None
    tuning: str = ""
    ssl: bool = False


class SecurityToolAdapter(ABC):
    @abstractmethod
    def build_command(self, options: ScanOptions, output_path: str) -> Tuple[str, List[str]]:
        """Return (program, argv) for one scan writing its report to output_path."""
        pass
