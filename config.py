"""Batch configuration for icon sets (icon-config.json)."""

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from font import FORMATS, FontMetrics
from inline_defs import InlineMode
from revision import DEFAULT_HASH_LENGTH
from svg import PRESETS, StageSpec, preset_stages

CONFIG_NAME = "icon-config.json"
MAX_PARENT_DEPTH = 10
KINDS = ("sprite", "font")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class IconSetConfig:
    name: str
    kind: str
    src: Path
    dist: Path
    sprite_name: str = "icon-sprite"
    font_name: str = "icons"
    css_prefix: str = "icon"
    href_base_path: str = "/sprite/"
    hash_length: int = DEFAULT_HASH_LENGTH
    enable_hash_revving: bool = True
    hash_separator: Optional[str] = None
    optimizer: str = "default"
    stages: Tuple[StageSpec, ...] = ()
    inline_mode: Optional[str] = None
    formats: Tuple[str, ...] = FORMATS
    metrics: FontMetrics = FontMetrics()
    reference_files: Tuple[Path, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Icon set name must not be empty")
        if self.kind not in KINDS:
            raise ConfigError(f"{self.name}: kind must be one of {', '.join(KINDS)}, got {self.kind!r}")
        if not 1 <= self.hash_length <= 64:
            raise ConfigError(f"{self.name}: hash_length must be between 1 and 64")
        if self.hash_separator not in (None, "-", "."):
            raise ConfigError(f"{self.name}: hash_separator must be '-' or '.'")
        if self.optimizer != "custom" and self.optimizer not in PRESETS:
            raise ConfigError(f"{self.name}: unknown optimizer preset {self.optimizer!r}")
        if self.optimizer == "custom" and not self.stages:
            raise ConfigError(f"{self.name}: the custom optimizer needs a list of stages")
        if self.inline_mode is not None:
            try:
                InlineMode.parse(self.inline_mode)
            except ValueError as e:
                raise ConfigError(f"{self.name}: {e}") from None
        unknown = [f for f in self.formats if f not in FORMATS]
        if unknown:
            raise ConfigError(f"{self.name}: unsupported font formats {', '.join(unknown)}")

    @property
    def base_name(self) -> str:
        return self.sprite_name if self.kind == "sprite" else self.font_name

    @property
    def separator(self) -> str:
        if self.hash_separator:
            return self.hash_separator
        return "-" if self.kind == "sprite" else "."

    def optimizer_stages(self) -> List[StageSpec]:
        stages = list(self.stages) if self.optimizer == "custom" else preset_stages(self.optimizer)
        if self.inline_mode is None:
            return stages
        # An explicit inline mode overrides whatever the preset chose.
        return [
            ("inline_defs", {"mode": self.inline_mode}) if _stage_name(s) == "inline_defs" else s
            for s in stages
        ]


def _stage_name(spec: StageSpec) -> str:
    return spec if isinstance(spec, str) else spec[0]


def _stage_spec(raw: Any) -> StageSpec:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping) and "name" in raw:
        return (raw["name"], dict(raw.get("params", {})))
    raise ConfigError(f"Invalid optimizer stage {raw!r}")


_FIELDS = {f.name for f in dataclasses.fields(IconSetConfig)}
_METRIC_FIELDS = {f.name for f in dataclasses.fields(FontMetrics)}


def parse_icon_set(raw: Mapping[str, Any], base_dir: Path) -> IconSetConfig:
    unknown = set(raw) - _FIELDS
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    for required in ("name", "src", "dist"):
        if required not in raw:
            raise ConfigError(f"Configuration {raw.get('name', '<unnamed>')!r} is missing {required!r}")

    values: Dict[str, Any] = dict(raw)
    values.setdefault("kind", "sprite")
    values.setdefault("optimizer", "icon_font" if values["kind"] == "font" else "default")
    values["src"] = (base_dir / raw["src"]).resolve()
    values["dist"] = (base_dir / raw["dist"]).resolve()
    values["reference_files"] = tuple((base_dir / p).resolve() for p in raw.get("reference_files", ()))
    values["stages"] = tuple(_stage_spec(s) for s in raw.get("stages", ()))
    if "formats" in raw:
        values["formats"] = tuple(raw["formats"])

    metrics = raw.get("metrics", {})
    if not isinstance(metrics, Mapping) or set(metrics) - _METRIC_FIELDS:
        raise ConfigError(f"{raw['name']}: invalid font metrics {metrics!r}")
    values["metrics"] = FontMetrics(**metrics)

    try:
        return IconSetConfig(**values)
    except TypeError as e:
        raise ConfigError(f"{raw['name']}: {e}") from e


@dataclass
class BatchConfig:
    configurations: List[IconSetConfig] = field(default_factory=list)
    path: Optional[Path] = None

    def names(self) -> List[str]:
        return [c.name for c in self.configurations]

    def select(self, names: Optional[List[str]]) -> List[IconSetConfig]:
        if not names:
            return list(self.configurations)
        missing = [n for n in names if n not in self.names()]
        if missing:
            raise ConfigError(f"Configuration not found: {', '.join(missing)}")
        return [c for c in self.configurations if c.name in names]


def find_config(config_path: Path, cwd: Optional[Path] = None) -> Optional[Path]:
    """The config file itself, or the first file of that name in cwd or its parents."""
    config_path = Path(config_path)
    if config_path.is_file():
        return config_path.resolve()
    if config_path.is_absolute():
        return None
    current = (cwd or Path.cwd()).resolve()
    for _ in range(MAX_PARENT_DEPTH + 1):
        candidate = current / config_path
        if candidate.is_file():
            return candidate
        if current.parent == current:
            break
        current = current.parent
    return None


def load_config(config_path: Path, cwd: Optional[Path] = None) -> BatchConfig:
    path = find_config(config_path, cwd)
    if path is None:
        raise ConfigError(f"Configuration file {config_path} not found")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: invalid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("configurations"), list):
        raise ConfigError(f"{path}: expected an object with a 'configurations' list")

    defaults = data.get("defaults", {})
    configurations = []
    for raw in data["configurations"]:
        merged = {**defaults, **raw}
        try:
            configurations.append(parse_icon_set(merged, path.parent))
        except ConfigError as e:
            raise ConfigError(f"{path}: {e}") from e

    names = [c.name for c in configurations]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"{path}: duplicate configuration names: {', '.join(duplicates)}")
    return BatchConfig(configurations=configurations, path=path)
