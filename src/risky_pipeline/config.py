import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Union

ADDRESS_SPACE = 1 << 32


class ConfigError(Exception):
    """Raised when a core configuration is malformed."""
    pass


def _parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            raise ConfigError(f"{key} is not a valid integer: {value!r}") from None
    raise ConfigError(f"{key} must be an integer, got {type(value).__name__}")


@dataclass(frozen=True)
class CoreConfig:
    reset_vector: int = 0x00000000
    imem_base: int = 0x00000000
    imem_size: int = 4096
    dmem_base: int = 0x00000000
    dmem_size: int = 4096

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{f.name} must be an integer, got {value!r}")

        self._check_window("imem", self.imem_base, self.imem_size)
        self._check_window("dmem", self.dmem_base, self.dmem_size)

        if not 0 <= self.reset_vector < ADDRESS_SPACE:
            raise ConfigError(f"reset_vector 0x{self.reset_vector:X} is not a 32-bit address")
        if self.reset_vector % 4:
            raise ConfigError(f"reset_vector 0x{self.reset_vector:08X} is not word aligned")
        if not self.imem_base <= self.reset_vector < self.imem_base + self.imem_size:
            raise ConfigError(
                f"reset_vector 0x{self.reset_vector:08X} lies outside instruction memory "
                f"[0x{self.imem_base:08X}, 0x{self.imem_base + self.imem_size:08X})")

    @staticmethod
    def _check_window(name: str, base: int, size: int):
        if not 0 <= base < ADDRESS_SPACE:
            raise ConfigError(f"{name}_base 0x{base:X} is not a 32-bit address")
        if base % 4:
            raise ConfigError(f"{name}_base 0x{base:08X} is not word aligned")
        if size <= 0 or size % 4:
            raise ConfigError(f"{name}_size must be a positive multiple of 4, got {size}")
        if base + size > ADDRESS_SPACE:
            raise ConfigError(f"{name} window [0x{base:08X} + {size}] exceeds the 32-bit address space")

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "CoreConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**{key: _parse_int(key, value) for key, value in cfg.items()})

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "CoreConfig":
        try:
            with open(path, 'r') as f:
                cfg = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(cfg, dict):
            raise ConfigError(f"{path} must contain a JSON object")
        return cls.from_dict(cfg)

    def to_dict(self) -> dict:
        return asdict(self)
