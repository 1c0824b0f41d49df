"""
Result objects for flasher operations.

A flash run either completes FINALIZE and returns a successful result, or
raises; the CLI builds the failed form itself from the exception.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class OperationResult:
    """
    Outcome of one flash operation.

    Attributes:
        ok: Whether the session reached FINALIZE
        operation: Name of the operation (e.g., "flash")
        chip: Chip name reported by the detect register
        offset: Flash offset the image was written to
        bytes_len: Image bytes written
        blocks: FLASH_DATA requests sent
        block_size: Block size announced in FLASH_BEGIN
        flash_params: (mode, frequency, size) burned into the image header
        elapsed: Wall time of the device session in seconds
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
    """
    ok: bool
    operation: str
    chip: str = ""
    offset: int = 0
    bytes_len: int = 0
    blocks: int = 0
    block_size: int = 0
    flash_params: Optional[Tuple[str, str, str]] = None
    elapsed: Optional[float] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def region(self) -> str:
        """Written flash range, end exclusive."""
        return f"0x{self.offset:08X}-0x{self.offset + self.bytes_len:08X}"

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_summary(self) -> str:
        """Human-readable block for the console."""
        status = "SUCCESS" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.chip:
            lines.append(f"  Chip: {self.chip}")
        if self.ok:
            lines.append(f"  Region: {self.region}")
            lines.append(f"  Bytes: {self.bytes_len:,} in {self.blocks} block(s) of {self.block_size}")
        else:
            lines.append(f"  Offset: 0x{self.offset:08X}")
        if self.flash_params:
            lines.append("  Flash: mode {}, freq {}, size {}".format(*self.flash_params))
        if self.elapsed is not None:
            lines.append(f"  Elapsed: {self.elapsed:.1f}s")

        for title, items in (("Warnings", self.warnings), ("Errors", self.errors)):
            if items:
                lines.append(f"  {title}:")
                lines.extend(f"    - {item}" for item in items)

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "chip": self.chip,
            "offset": self.offset,
            "region": self.region if self.ok else None,
            "bytes_len": self.bytes_len,
            "blocks": self.blocks,
            "block_size": self.block_size,
            "flash_params": list(self.flash_params) if self.flash_params else None,
            "elapsed": self.elapsed,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }

    @classmethod
    def success(cls, operation: str, **kwargs) -> "OperationResult":
        return cls(ok=True, operation=operation, **kwargs)

    @classmethod
    def failure(cls, operation: str, error: str, **kwargs) -> "OperationResult":
        result = cls(ok=False, operation=operation, **kwargs)
        result.errors.append(error)
        return result
