from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields as dataclass_fields
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Union

import yaml

from .fields import Field, FieldSet
from .override_keys import OverrideKey, parse_override_keys

logger = logging.getLogger(__name__)

TRANSFER_SYNTAXES = ("little", "implicit", "big")


@dataclass(frozen=True)
class EncapsulationConfig:
    # Inputs/outputs
    document_class: str
    input_path: Path
    output_path: Path

    # Document metadata supplied by the user; wins over document and reference values
    user_fields: FieldSet = field(default_factory=FieldSet)

    # Pre-existing series/study
    series_file: Path | None = None
    read_series_info: bool = True  # False: join the study only, start a new series
    auto_increment: bool = False
    instance_number: int | None = None

    # PDF burned-in annotation
    annotation: bool = True

    # Applied last, unchecked
    override_keys: Tuple[OverrideKey, ...] = ()

    # Fields the source document must provide
    required_fields: Tuple[Field, ...] = ()

    # Output encoding
    transfer_syntax: str = "little"  # one of: little, implicit, big
    file_padding: int = 0  # pad file length to a multiple of this many bytes (0 = off)

    # UID root for generated identifiers (None => pydicom root)
    uid_prefix: str | None = None

    # STL equipment
    manufacturer: str = ""
    manufacturer_model: str = ""
    device_serial: str = ""
    software_versions: str = ""
    measurement_units: Tuple[str, str, str] = ("mm", "UCUM", "mm")

    def __post_init__(self) -> None:
        if self.transfer_syntax not in TRANSFER_SYNTAXES:
            raise ValueError(f"transfer_syntax must be one of {TRANSFER_SYNTAXES}, got {self.transfer_syntax!r}")
        for name in ("file_padding", "instance_number"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise TypeError(f"{name} must be an integer, got {value!r}")
        if self.file_padding < 0:
            raise ValueError("file_padding must be >= 0")
        if self.file_padding % 2:
            raise ValueError("file_padding must be even")
        if self.instance_number is not None and self.instance_number < 1:
            raise ValueError("instance_number must be >= 1")


_PATH_KEYS = {"input_path", "output_path", "series_file"}


def _field_from_name(name: str) -> Field:
    for candidate in Field:
        if name in (candidate.name, candidate.name.lower(), candidate.value):
            return candidate
    raise ValueError(f"Unknown metadata field in config: {name}")


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load EncapsulationConfig values from a YAML mapping.

    ``user_fields`` may be given as a mapping of field names (``patient_name`` or
    ``PatientName``) to values; ``override_keys`` as a list of key strings.
    """
    config_path = Path(config_path)
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"{config_path}: invalid YAML ({exc})") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    known = {f.name for f in dataclass_fields(EncapsulationConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{config_path}: unknown config key(s): {', '.join(unknown)}")

    logger.info("Loaded %d setting(s) from %s", len(data), config_path)
    return data


def build_config(values: Mapping[str, Any]) -> EncapsulationConfig:
    """Normalise plain values (from YAML and/or the CLI) into an EncapsulationConfig."""
    kwargs: Dict[str, Any] = dict(values)
    for key in _PATH_KEYS:
        if kwargs.get(key) is not None:
            kwargs[key] = Path(kwargs[key])

    user = kwargs.get("user_fields")
    if isinstance(user, Mapping):
        kwargs["user_fields"] = FieldSet({_field_from_name(k): v for k, v in user.items()})

    keys = kwargs.get("override_keys")
    if keys is not None:
        kwargs["override_keys"] = tuple(
            k if isinstance(k, OverrideKey) else parse_override_keys([k])[0] for k in keys
        )

    required = kwargs.get("required_fields")
    if required is not None:
        kwargs["required_fields"] = tuple(
            r if isinstance(r, Field) else _field_from_name(r) for r in required
        )

    units = kwargs.get("measurement_units")
    if units is not None:
        kwargs["measurement_units"] = tuple(str(u) for u in units)
        if len(kwargs["measurement_units"]) != 3:
            raise ValueError("measurement_units needs code value, coding scheme and code meaning")

    return EncapsulationConfig(**kwargs)


__all__ = ["EncapsulationConfig", "TRANSFER_SYNTAXES", "load_yaml_config", "build_config"]
