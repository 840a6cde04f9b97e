"""Define enums, per-call settings and the YAML-backed pipeline configuration.

The frozen ``*Settings``/``GenerationProfile`` dataclasses are the immutable
value objects every transform receives per call.  ``PipelineConfig`` is the
mutable, YAML-persisted tree an orchestrator loads once and turns into those
value objects with ``profile_for`` / ``histogram_settings`` / ...
"""

import dataclasses
import logging
import math
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

import yaml

from .core.errors import InvalidParameter
from .core.image import MipChain

logger = logging.getLogger("mipforge.config")

_SUPPORTED_CONFIG_VERSION = 1


class TextureType(Enum):
    """Enumerate supported texture semantics."""

    ALBEDO = "albedo"
    NORMAL = "normal"
    ROUGHNESS = "roughness"
    GLOSS = "gloss"
    METALLIC = "metallic"
    AMBIENT_OCCLUSION = "ao"
    EMISSIVE = "emissive"
    HEIGHT = "height"
    GENERIC = "generic"


class FilterType(Enum):
    """Enumerate mip reduction kernels."""

    BOX = "box"
    TENT = "tent"
    BICUBIC = "bicubic"
    MITCHELL = "mitchell"
    LANCZOS = "lanczos"
    KAISER = "kaiser"
    GAUSSIAN = "gaussian"
    NEAREST = "nearest"
    MIN = "min"
    MAX = "max"


class WrapMode(Enum):
    CLAMP = "clamp"
    WRAP = "wrap"


class RoughnessEncoding(Enum):
    """Whether a channel stores roughness or its complement, gloss."""

    ROUGHNESS = "roughness"
    GLOSS = "gloss"


class HistogramQuality(Enum):
    FAST = "fast"
    HIGH_QUALITY = "high_quality"


class HistogramChannelMode(Enum):
    """How histogram statistics are shared between channels."""

    AVERAGE_LUMINANCE = "average_luminance"
    RGB_ONLY = "rgb_only"
    PER_CHANNEL = "per_channel"
    PER_CHANNEL_RGBA = "per_channel_rgba"


class PackingMode(Enum):
    """Packed-texture layouts (Occlusion, Gloss, Metalness, Height)."""

    OG = "og"
    OGM = "ogm"
    OGMH = "ogmh"


class ChannelType(Enum):
    AO = "ao"
    GLOSS = "gloss"
    METALLIC = "metallic"
    HEIGHT = "height"


class AOProcessingMode(Enum):
    """Per-level darkening applied to occlusion-like chains before packing."""

    NONE = "none"
    BIASED_DARKENING = "biased_darkening"
    PERCENTILE = "percentile"


_TRANSFERS = ("gamma", "srgb")

# Destination slots per packing mode, in output channel order.
PACKING_LAYOUTS: Dict[PackingMode, Tuple[ChannelType, ...]] = {
    PackingMode.OG: (
        ChannelType.AO, ChannelType.AO, ChannelType.AO, ChannelType.GLOSS,
    ),
    PackingMode.OGM: (
        ChannelType.AO, ChannelType.GLOSS, ChannelType.METALLIC,
    ),
    PackingMode.OGMH: (
        ChannelType.AO, ChannelType.GLOSS, ChannelType.METALLIC, ChannelType.HEIGHT,
    ),
}

# Fill value for a slot whose source is absent.
DEFAULT_CHANNEL_VALUES: Dict[ChannelType, float] = {
    ChannelType.AO: 1.0,
    ChannelType.GLOSS: 0.5,
    ChannelType.METALLIC: 0.0,
    ChannelType.HEIGHT: 0.5,
}


def _raise_if_errors(owner: str, errors: List[str]):
    if errors:
        raise InvalidParameter(
            f"Invalid {owner}:\n" + "\n".join(f"  - {e}" for e in errors)
        )


def _is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class GenerationProfile:
    """Immutable mip generation settings bound to a texture semantic."""

    texture_type: TextureType = TextureType.GENERIC
    filter_type: FilterType = FilterType.KAISER
    apply_gamma_correction: bool = False
    gamma: float = 2.2
    transfer: str = "gamma"
    blur_radius: float = 0.0
    min_mip_size: int = 1
    include_last_level: bool = True
    normalize_normals: bool = False
    modifiers: tuple = ()
    wrap_mode: WrapMode = WrapMode.CLAMP
    lanczos_lobes: int = 3
    kaiser_width: float = 3.0
    kaiser_alpha: float = 4.0
    energy_preserving: bool = False
    roughness_encoding: Optional[RoughnessEncoding] = None
    encode_output: bool = True

    @classmethod
    def for_texture_type(cls, texture_type: TextureType, **overrides) -> "GenerationProfile":
        """Return the default profile for a semantic, with field overrides."""
        base = dict(_PROFILE_DEFAULTS.get(texture_type, {}))
        base.update(overrides)
        if "modifiers" in base:
            base["modifiers"] = tuple(base["modifiers"])
        return cls(texture_type=texture_type, **base)

    def validate(self):
        """Raise InvalidParameter when any field is out of range."""
        errors = []
        if not isinstance(self.min_mip_size, int) or self.min_mip_size < 1:
            errors.append(f"min_mip_size must be an integer >= 1, got {self.min_mip_size!r}")
        if not _is_finite_number(self.gamma) or self.gamma <= 0:
            errors.append(f"gamma must be a finite positive number, got {self.gamma!r}")
        if self.transfer not in _TRANSFERS:
            errors.append(f"transfer must be one of {list(_TRANSFERS)}, got {self.transfer!r}")
        if not _is_finite_number(self.blur_radius) or self.blur_radius < 0:
            errors.append(f"blur_radius must be >= 0, got {self.blur_radius!r}")
        if not isinstance(self.lanczos_lobes, int) or self.lanczos_lobes < 1:
            errors.append(f"lanczos_lobes must be an integer >= 1, got {self.lanczos_lobes!r}")
        if not _is_finite_number(self.kaiser_width) or self.kaiser_width <= 0:
            errors.append(f"kaiser_width must be > 0, got {self.kaiser_width!r}")
        if not _is_finite_number(self.kaiser_alpha) or self.kaiser_alpha <= 0:
            errors.append(f"kaiser_alpha must be > 0, got {self.kaiser_alpha!r}")
        if self.energy_preserving and self.roughness_encoding is None:
            errors.append("energy_preserving requires an explicit roughness_encoding")
        for idx, modifier in enumerate(self.modifiers):
            if not callable(getattr(modifier, "apply", None)):
                errors.append(
                    f"modifiers[{idx}] ({type(modifier).__name__}) has no apply() method"
                )
        _raise_if_errors("GenerationProfile", errors)


_PROFILE_DEFAULTS: Dict[TextureType, dict] = {
    TextureType.ALBEDO: {"apply_gamma_correction": True},
    TextureType.EMISSIVE: {"apply_gamma_correction": True},
    TextureType.NORMAL: {"normalize_normals": True},
    TextureType.ROUGHNESS: {"roughness_encoding": RoughnessEncoding.ROUGHNESS},
    TextureType.GLOSS: {"roughness_encoding": RoughnessEncoding.GLOSS},
    TextureType.METALLIC: {"filter_type": FilterType.BOX},
    TextureType.AMBIENT_OCCLUSION: {"filter_type": FilterType.BOX},
    TextureType.HEIGHT: {},
    TextureType.GENERIC: {},
}


@dataclass(frozen=True)
class HistogramSettings:
    """Immutable histogram analysis settings."""

    quality: HistogramQuality = HistogramQuality.HIGH_QUALITY
    channel_mode: HistogramChannelMode = HistogramChannelMode.AVERAGE_LUMINANCE
    percentile_low: float = 0.5
    percentile_high: float = 99.5
    knee_width: float = 0.02
    min_range_threshold: float = 0.01
    tail_threshold: float = 0.005
    bins: int = 256
    enabled: bool = True

    @classmethod
    def fast(cls, **overrides) -> "HistogramSettings":
        """Hard clamp at the 1st/99th percentiles."""
        params = dict(quality=HistogramQuality.FAST, percentile_low=1.0,
                      percentile_high=99.0, knee_width=0.0)
        params.update(overrides)
        return cls(**params)

    @classmethod
    def high_quality(cls, **overrides) -> "HistogramSettings":
        """0.5th/99.5th percentiles with a 2% soft knee."""
        params = dict(quality=HistogramQuality.HIGH_QUALITY, percentile_low=0.5,
                      percentile_high=99.5, knee_width=0.02)
        params.update(overrides)
        return cls(**params)

    @property
    def uses_knee(self) -> bool:
        return self.quality == HistogramQuality.HIGH_QUALITY and self.knee_width > 0

    def validate(self):
        errors = []
        for name in ("percentile_low", "percentile_high"):
            value = getattr(self, name)
            if not _is_finite_number(value) or not (0.0 <= value <= 100.0):
                errors.append(f"{name} must be within [0, 100], got {value!r}")
        if (_is_finite_number(self.percentile_low) and _is_finite_number(self.percentile_high)
                and self.percentile_low >= self.percentile_high):
            errors.append(
                f"percentile_low ({self.percentile_low}) must be below "
                f"percentile_high ({self.percentile_high})"
            )
        if not _is_finite_number(self.knee_width) or not (0.0 <= self.knee_width <= 0.5):
            errors.append(f"knee_width must be within [0, 0.5], got {self.knee_width!r}")
        if not _is_finite_number(self.min_range_threshold) or self.min_range_threshold < 0:
            errors.append(f"min_range_threshold must be >= 0, got {self.min_range_threshold!r}")
        if not _is_finite_number(self.tail_threshold) or not (0.0 <= self.tail_threshold <= 1.0):
            errors.append(f"tail_threshold must be within [0, 1], got {self.tail_threshold!r}")
        if not isinstance(self.bins, int) or self.bins < 2:
            errors.append(f"bins must be an integer >= 2, got {self.bins!r}")
        _raise_if_errors("HistogramSettings", errors)


@dataclass(frozen=True)
class ToksvigSettings:
    """Immutable Toksvig correction settings.

    ``encoding`` has no default: whether the corrected channel stores
    roughness or gloss must always be stated by the caller.
    """

    encoding: RoughnessEncoding
    enabled: bool = True
    composite_power: float = 1.0
    min_mip_level: int = 0
    smooth_variance: bool = True
    normal_map_id: Optional[str] = None
    variance_threshold: float = 0.0
    channel: int = 0

    def validate(self):
        errors = []
        if not isinstance(self.encoding, RoughnessEncoding):
            errors.append(
                f"encoding must be a RoughnessEncoding, got {self.encoding!r}"
            )
        if not _is_finite_number(self.composite_power) or self.composite_power < 0:
            errors.append(
                f"composite_power must be a finite number >= 0, got {self.composite_power!r}"
            )
        if not isinstance(self.min_mip_level, int) or self.min_mip_level < 0:
            errors.append(f"min_mip_level must be an integer >= 0, got {self.min_mip_level!r}")
        if (not _is_finite_number(self.variance_threshold)
                or not (0.0 <= self.variance_threshold < 1.0)):
            errors.append(
                f"variance_threshold must be within [0, 1), got {self.variance_threshold!r}"
            )
        if not isinstance(self.channel, int) or self.channel < 0:
            errors.append(f"channel must be an integer >= 0, got {self.channel!r}")
        _raise_if_errors("ToksvigSettings", errors)


@dataclass(frozen=True, eq=False)
class ChannelSource:
    """One packed slot's source chain plus its pre-processing flags."""

    chain: MipChain
    source_channel: int = 0
    apply_toksvig: bool = False
    toksvig: Optional[ToksvigSettings] = None
    normal_chain: Optional[MipChain] = None
    ao_mode: AOProcessingMode = AOProcessingMode.NONE
    ao_bias: float = 0.5
    ao_percentile: float = 10.0
    ao_start_level: int = 1


@dataclass(frozen=True, eq=False)
class ChannelPackingSettings:
    """Packing mode plus the source for each semantic channel."""

    mode: PackingMode
    sources: Mapping[ChannelType, ChannelSource] = field(default_factory=dict)
    defaults: Mapping[ChannelType, float] = field(default_factory=dict)

    @property
    def layout(self) -> Tuple[ChannelType, ...]:
        return PACKING_LAYOUTS[self.mode]

    def default_for(self, channel_type: ChannelType) -> float:
        return float(self.defaults.get(channel_type, DEFAULT_CHANNEL_VALUES[channel_type]))

    def validate(self):
        errors = []
        if not isinstance(self.mode, PackingMode):
            _raise_if_errors("ChannelPackingSettings", [f"mode must be a PackingMode, got {self.mode!r}"])
        if not self.sources:
            errors.append("at least one channel source must be configured")
        allowed = set(self.layout)
        for channel_type, source in self.sources.items():
            name = getattr(channel_type, "value", channel_type)
            if channel_type not in allowed:
                errors.append(
                    f"{name} has no slot in {self.mode.value.upper()} "
                    f"(slots: {sorted(c.value for c in allowed)})"
                )
                continue
            if not isinstance(source.chain, MipChain) or len(source.chain) == 0:
                errors.append(f"{name} source chain is missing or empty")
            if not isinstance(source.source_channel, int) or source.source_channel < 0:
                errors.append(f"{name} source_channel must be an integer >= 0")
            if source.apply_toksvig:
                if channel_type != ChannelType.GLOSS:
                    errors.append(f"Toksvig correction is only supported on the gloss slot, not {name}")
                if source.toksvig is None:
                    errors.append(f"{name} requests Toksvig correction without ToksvigSettings")
                if source.normal_chain is None:
                    errors.append(f"{name} requests Toksvig correction without a normal chain")
            if source.ao_mode != AOProcessingMode.NONE:
                if channel_type not in (ChannelType.AO, ChannelType.METALLIC):
                    errors.append(f"AO processing is not applicable to {name}")
                if not _is_finite_number(source.ao_bias) or not (0.0 <= source.ao_bias <= 1.0):
                    errors.append(f"{name} ao_bias must be within [0, 1]")
                if (not _is_finite_number(source.ao_percentile)
                        or not (0.0 <= source.ao_percentile <= 100.0)):
                    errors.append(f"{name} ao_percentile must be within [0, 100]")
                if not isinstance(source.ao_start_level, int) or source.ao_start_level < 0:
                    errors.append(f"{name} ao_start_level must be an integer >= 0")
        for channel_type, value in self.defaults.items():
            if channel_type not in DEFAULT_CHANNEL_VALUES:
                errors.append(f"unknown default channel {channel_type!r}")
            elif not _is_finite_number(value) or not (0.0 <= value <= 1.0):
                errors.append(f"default for {channel_type.value} must be within [0, 1], got {value!r}")
        _raise_if_errors("ChannelPackingSettings", errors)
        for source in self.sources.values():
            if source.apply_toksvig:
                source.toksvig.validate()


# ---------------------------------------------------------------------------
# YAML-backed configuration tree
# ---------------------------------------------------------------------------


@dataclass
class MipmapConfig:
    """Store settings for mip chain generation."""

    filter_method: str = "kaiser"
    # Per texture type filter override, e.g. {"metallic": "box"}.
    filter_overrides: Dict[str, str] = field(default_factory=dict)
    gamma_correct_color: bool = True
    gamma: float = 2.2
    transfer: str = "gamma"
    min_mip_size: int = 1
    include_last_level: bool = True
    blur_radius: float = 0.0
    wrap_mode: str = "clamp"
    renormalize_normals: bool = True
    energy_preserving: bool = False
    increase_roughness_per_mip: bool = False
    roughness_mip_increase: float = 0.04
    sharpen_mips: bool = False
    sharpen_levels: List[int] = field(default_factory=lambda: [1, 2, 3])
    sharpen_strength: float = 0.3
    sharpen_radius: float = 1.0


@dataclass
class HistogramConfig:
    """Store settings for dynamic-range normalization."""

    enabled: bool = False
    quality: str = "high_quality"
    channel_mode: str = "average_luminance"
    percentile_low: float = 0.5
    percentile_high: float = 99.5
    knee_width: float = 0.02
    min_range_threshold: float = 0.01
    tail_threshold: float = 0.005
    bins: int = 256


@dataclass
class ToksvigConfig:
    """Store settings for variance-driven roughness correction."""

    enabled: bool = True
    composite_power: float = 1.0
    min_mip_level: int = 0
    smooth_variance: bool = True
    variance_threshold: float = 0.0
    encoding: str = "gloss"


@dataclass
class PackingConfig:
    """Store settings for channel packing."""

    mode: str = "ogm"
    defaults: Dict[str, float] = field(default_factory=dict)
    apply_toksvig: bool = True
    ao_mode: str = "none"
    ao_bias: float = 0.5
    ao_percentile: float = 10.0


@dataclass
class PipelineConfig:
    """Master pipeline configuration."""

    config_version: int = 1
    max_workers: int = 4
    log_level: str = "INFO"
    log_file: str = ""

    mipmap: MipmapConfig = field(default_factory=MipmapConfig)
    histogram: HistogramConfig = field(default_factory=HistogramConfig)
    toksvig: ToksvigConfig = field(default_factory=ToksvigConfig)
    packing: PackingConfig = field(default_factory=PackingConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        """Load pipeline configuration from YAML or return defaults."""
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config = cls()
            config.validate()
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise InvalidParameter(
                f"Failed to parse YAML config '{path}': {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise InvalidParameter(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )
        yaml_version = data.get("config_version", 1)
        if isinstance(yaml_version, int) and yaml_version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' has config_version=%d, but this build only "
                "supports up to version %d. Some settings may be ignored.",
                path, yaml_version, _SUPPORTED_CONFIG_VERSION,
            )
        config = cls()
        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except InvalidParameter as exc:
            raise InvalidParameter(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write pipeline configuration to a YAML file."""
        data = dataclasses.asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        ext = os.path.splitext(path)[1]
        tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def validate(self):
        """Validate configuration values. Raises InvalidParameter on invalid config."""
        errors = []

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(self.log_level).upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {sorted(valid_log_levels)}, "
                f"got '{self.log_level}'"
            )
        if self.max_workers < 1:
            errors.append("max_workers must be >= 1")
        if self.max_workers > 128:
            errors.append("max_workers must be <= 128")

        # Mipmap
        m = self.mipmap
        valid_filters = {f.value for f in FilterType}
        if m.filter_method not in valid_filters:
            errors.append(
                f"mipmap.filter_method must be one of {sorted(valid_filters)}, "
                f"got '{m.filter_method}'"
            )
        valid_types = {t.value for t in TextureType}
        for tex_name, filter_name in m.filter_overrides.items():
            if tex_name not in valid_types:
                errors.append(f"mipmap.filter_overrides has unknown texture type '{tex_name}'")
            if filter_name not in valid_filters:
                errors.append(
                    f"mipmap.filter_overrides['{tex_name}'] has unknown filter '{filter_name}'"
                )
        if m.wrap_mode not in {w.value for w in WrapMode}:
            errors.append(f"mipmap.wrap_mode must be 'clamp' or 'wrap', got '{m.wrap_mode}'")
        if m.roughness_mip_increase < 0:
            errors.append("mipmap.roughness_mip_increase must be >= 0")
        if m.sharpen_strength < 0:
            errors.append("mipmap.sharpen_strength must be >= 0")
        if m.sharpen_radius <= 0:
            errors.append("mipmap.sharpen_radius must be > 0")
        if any((not isinstance(lvl, int)) or lvl < 1 for lvl in m.sharpen_levels):
            errors.append("mipmap.sharpen_levels must contain integers >= 1")

        # Histogram
        h = self.histogram
        if h.quality not in {q.value for q in HistogramQuality}:
            errors.append(f"histogram.quality must be 'fast' or 'high_quality', got '{h.quality}'")
        valid_modes = {c.value for c in HistogramChannelMode}
        if h.channel_mode not in valid_modes:
            errors.append(
                f"histogram.channel_mode must be one of {sorted(valid_modes)}, "
                f"got '{h.channel_mode}'"
            )

        # Toksvig
        if self.toksvig.encoding not in {e.value for e in RoughnessEncoding}:
            errors.append(
                f"toksvig.encoding must be 'roughness' or 'gloss', got '{self.toksvig.encoding}'"
            )

        # Packing
        p = self.packing
        if p.mode not in {pm.value for pm in PackingMode}:
            errors.append(f"packing.mode must be one of og/ogm/ogmh, got '{p.mode}'")
        for name, value in p.defaults.items():
            if name not in {c.value for c in ChannelType}:
                errors.append(f"packing.defaults has unknown channel '{name}'")
            elif not (0.0 <= value <= 1.0):
                errors.append(f"packing.defaults['{name}'] must be within [0, 1]")
        if p.ao_mode not in {a.value for a in AOProcessingMode}:
            errors.append(f"packing.ao_mode has unknown value '{p.ao_mode}'")

        # Value-object checks only run once the enum strings are known good,
        # otherwise building them would raise on the bad name first.
        if not errors:
            builders = (
                lambda: self.profile_for(TextureType.GENERIC),
                self.histogram_settings,
                self.toksvig_settings,
            )
            for build in builders:
                try:
                    build().validate()
                except InvalidParameter as exc:
                    errors.append(str(exc))

        if errors:
            raise InvalidParameter(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )

    def profile_for(self, texture_type: TextureType) -> GenerationProfile:
        """Build the immutable generation profile for a texture type."""
        from .phases.modifiers import RoughnessBiasModifier, SharpenModifier

        m = self.mipmap
        filter_name = m.filter_overrides.get(texture_type.value)
        defaults = _PROFILE_DEFAULTS.get(texture_type, {})
        if filter_name is not None:
            filter_type = FilterType(filter_name)
        else:
            filter_type = defaults.get("filter_type", FilterType(m.filter_method))

        modifiers = []
        encoding = defaults.get("roughness_encoding")
        if encoding is not None and m.increase_roughness_per_mip:
            modifiers.append(RoughnessBiasModifier(m.roughness_mip_increase, encoding))
        if m.sharpen_mips:
            modifiers.append(SharpenModifier(
                m.sharpen_strength, m.sharpen_radius, tuple(m.sharpen_levels),
            ))

        return GenerationProfile.for_texture_type(
            texture_type,
            filter_type=filter_type,
            apply_gamma_correction=(
                m.gamma_correct_color and defaults.get("apply_gamma_correction", False)
            ),
            gamma=float(m.gamma),
            transfer=m.transfer,
            blur_radius=float(m.blur_radius),
            min_mip_size=m.min_mip_size,
            include_last_level=m.include_last_level,
            normalize_normals=(
                m.renormalize_normals and defaults.get("normalize_normals", False)
            ),
            wrap_mode=WrapMode(m.wrap_mode),
            energy_preserving=m.energy_preserving and encoding is not None,
            modifiers=tuple(modifiers),
        )

    def histogram_settings(self) -> HistogramSettings:
        h = self.histogram
        return HistogramSettings(
            quality=HistogramQuality(h.quality),
            channel_mode=HistogramChannelMode(h.channel_mode),
            percentile_low=float(h.percentile_low),
            percentile_high=float(h.percentile_high),
            knee_width=float(h.knee_width),
            min_range_threshold=float(h.min_range_threshold),
            tail_threshold=float(h.tail_threshold),
            bins=h.bins,
            enabled=h.enabled,
        )

    def toksvig_settings(self, encoding: Optional[RoughnessEncoding] = None) -> ToksvigSettings:
        t = self.toksvig
        return ToksvigSettings(
            encoding=encoding or RoughnessEncoding(t.encoding),
            enabled=t.enabled,
            composite_power=float(t.composite_power),
            min_mip_level=t.min_mip_level,
            smooth_variance=t.smooth_variance,
            variance_threshold=float(t.variance_threshold),
        )

    def packing_mode(self) -> PackingMode:
        return PackingMode(self.packing.mode)

    def packing_defaults(self) -> Dict[ChannelType, float]:
        return {ChannelType(k): float(v) for k, v in self.packing.defaults.items()}


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    for key, value in data.items():
        full_key = f"{_path}{key}"
        if not hasattr(obj, key):
            logger.warning("Unknown config key ignored: '%s'", full_key)
            continue
        field_val = getattr(obj, key)
        if dataclasses.is_dataclass(field_val) and isinstance(value, dict):
            _merge_dict_to_dataclass(field_val, value, f"{full_key}.")
            continue
        if value is None and field_val is not None:
            logger.warning(
                "Config key '%s' is null but field default is %s. Using default value.",
                full_key, type(field_val).__name__,
            )
            continue
        expected_type = type(field_val)
        # Allow int->float and exact float->int promotion.
        if (field_val is not None
                and not isinstance(value, expected_type)
                and not (expected_type is float and isinstance(value, int))
                and not (expected_type is int
                         and isinstance(value, float)
                         and value == int(value))):
            logger.warning(
                "Config type mismatch for '%s': expected %s, got %s (%r). Using default value.",
                full_key, expected_type.__name__, type(value).__name__, value,
            )
            continue
        if expected_type is int and isinstance(value, float):
            value = int(value)
        elif expected_type is float and isinstance(value, int):
            value = float(value)
        if isinstance(field_val, dict) and isinstance(value, dict):
            field_val.update(value)
        else:
            setattr(obj, key, value)
