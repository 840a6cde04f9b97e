"""Orchestrate mip generation, normalization, Toksvig correction and packing.

Levels of one chain are produced in order, but independent chains (for
example the gloss and normal chains feeding a packed texture) are generated
concurrently on a thread pool.  Cancellation is cooperative: the shared
event is checked between levels and between chains.
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import (
    PACKING_LAYOUTS, ChannelPackingSettings, ChannelSource, ChannelType,
    GenerationProfile, PackingMode, PipelineConfig, RoughnessEncoding, TextureType,
    AOProcessingMode,
)
from .core import (
    ConversionCancelled, DimensionMismatch, Image, InvalidParameter, MipChain, setup_logging,
)
from .phases.histogram import HistogramNormalizer, HistogramResult
from .phases.mipmap import MipChainGenerator
from .phases.packing import ChannelPacker

logger = logging.getLogger("mipforge.pipeline")

_PACKED_TEXTURE_TYPES = {
    ChannelType.AO: TextureType.AMBIENT_OCCLUSION,
    ChannelType.GLOSS: TextureType.GLOSS,
    ChannelType.METALLIC: TextureType.METALLIC,
    ChannelType.HEIGHT: TextureType.HEIGHT,
}


@dataclass
class ConversionResult:
    """Output mip chain plus the reconstruction data that travels with it."""

    chain: MipChain
    histogram: Optional[HistogramResult] = None
    warnings: List[str] = field(default_factory=list)

    def metadata(self) -> dict:
        if self.histogram is None or self.histogram.is_identity:
            return {}
        return self.histogram.to_metadata()


@dataclass
class BatchItemResult:
    name: str
    result: Optional[ConversionResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TexturePipeline:
    """Run conversion jobs built from a :class:`PipelineConfig`."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self.config.validate()
        self._cancel_event = threading.Event()
        self.generator = MipChainGenerator()
        self.normalizer = HistogramNormalizer()
        self.packer = ChannelPacker()

    def configure_logging(self, force: bool = False) -> int:
        """Apply the config's ``log_level`` and ``log_file`` to the mipforge loggers."""
        return setup_logging(self.config.log_level, self.config.log_file or None, force)

    def cancel(self):
        """Request cooperative cancellation of in-flight work."""
        logger.info("Cancellation requested")
        self._cancel_event.set()

    def reset(self):
        self._cancel_event.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _check_cancel(self, where: str):
        if self._cancel_event.is_set():
            raise ConversionCancelled(f"Conversion cancelled {where}")

    def generate_chains(self, jobs: Mapping[str, Tuple[Image, GenerationProfile]],
                        max_workers: Optional[int] = None) -> Dict[str, MipChain]:
        """Generate independent chains, concurrently when more than one worker is allowed.

        The first failure cancels chains that have not started yet and is
        re-raised unchanged.
        """
        if not jobs:
            return {}
        for name, (image, profile) in jobs.items():
            image.validate()
            profile.validate()
        self._check_cancel("before chain generation")

        workers = min(max_workers or self.config.max_workers, len(jobs))
        if workers <= 1:
            chains = {}
            for name, (image, profile) in jobs.items():
                self._check_cancel(f"before chain '{name}'")
                chains[name] = self.generator.generate(image, profile, self._cancel_event)
            return chains

        chains: Dict[str, MipChain] = {}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.generator.generate, image, profile, self._cancel_event): name
                for name, (image, profile) in jobs.items()
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
            errors = [f for f in done if f.exception() is not None]
            if errors:
                failed = errors[0]
                logger.error(
                    "Chain '%s' failed: %s", futures[failed], failed.exception(),
                )
                wait(pending)
                raise failed.exception()
            for future in done:
                chains[futures[future]] = future.result()
        return chains

    def convert(self, image: Image, texture_type: TextureType,
                normalize: Optional[bool] = None) -> ConversionResult:
        """Generate one chain and optionally normalize its dynamic range."""
        profile = self.config.profile_for(texture_type)
        if normalize is None:
            normalize = self.config.histogram.enabled
        settings = self.config.histogram_settings() if normalize else None
        if settings is not None:
            settings.validate()

        self._check_cancel("before generation")
        chain = self.generator.generate(image, profile, self._cancel_event)
        if settings is None:
            return ConversionResult(chain)

        self._check_cancel("before normalization")
        chain, histogram = self.normalizer.normalize(chain, settings)
        for warning in histogram.warnings:
            logger.warning("%s: %s", texture_type.value, warning)
        return ConversionResult(chain, histogram, list(histogram.warnings))

    def convert_packed(self, ao: Optional[Image] = None, gloss: Optional[Image] = None,
                       metallic: Optional[Image] = None, height: Optional[Image] = None,
                       normal: Optional[Image] = None,
                       mode: Optional[PackingMode] = None) -> ConversionResult:
        """Generate the source chains concurrently, correct gloss, and pack.

        Gloss is Toksvig-corrected against ``normal`` when a normal map is
        given and both ``packing.apply_toksvig`` and ``toksvig.enabled`` are set.
        """
        mode = mode or self.config.packing_mode()
        images = {
            ChannelType.AO: ao, ChannelType.GLOSS: gloss,
            ChannelType.METALLIC: metallic, ChannelType.HEIGHT: height,
        }
        images = {ct: img for ct, img in images.items() if img is not None}
        self._precheck_packed(images, normal, mode)

        use_toksvig = (
            normal is not None
            and ChannelType.GLOSS in images
            and self.config.packing.apply_toksvig
            and self.config.toksvig.enabled
        )
        jobs = {
            ct.value: (img, self.config.profile_for(_PACKED_TEXTURE_TYPES[ct]))
            for ct, img in images.items()
        }
        if use_toksvig:
            jobs["normal"] = (normal, self.config.profile_for(TextureType.NORMAL))
        chains = self.generate_chains(jobs)

        packing = self.config.packing
        sources = {}
        for ct in images:
            kwargs = {}
            if ct == ChannelType.AO:
                kwargs.update(
                    ao_mode=AOProcessingMode(packing.ao_mode),
                    ao_bias=packing.ao_bias,
                    ao_percentile=packing.ao_percentile,
                )
            if ct == ChannelType.GLOSS and use_toksvig:
                kwargs.update(
                    apply_toksvig=True,
                    toksvig=self.config.toksvig_settings(RoughnessEncoding.GLOSS),
                    normal_chain=chains["normal"],
                )
            sources[ct] = ChannelSource(chains[ct.value], **kwargs)

        settings = ChannelPackingSettings(mode, sources, self.config.packing_defaults())
        self._check_cancel("before packing")
        packed = self.packer.pack(settings, self._cancel_event)
        return ConversionResult(packed)

    @staticmethod
    def _precheck_packed(images: Mapping[ChannelType, Image], normal: Optional[Image],
                         mode: PackingMode):
        if not images:
            raise InvalidParameter("convert_packed needs at least one source image")
        allowed = set(PACKING_LAYOUTS[mode])
        extra = [ct.value for ct in images if ct not in allowed]
        if extra:
            raise InvalidParameter(
                f"{mode.value.upper()} has no slot for: {', '.join(sorted(extra))}"
            )
        sizes = {ct.value: img.size for ct, img in images.items()}
        if normal is not None:
            sizes["normal"] = normal.size
        if len(set(sizes.values())) > 1:
            detail = ", ".join(f"{k}={w}x{h}" for k, (w, h) in sizes.items())
            raise DimensionMismatch(f"Packed sources differ in size: {detail}")

    def run_batch(self, items: Sequence[Tuple[str, Image, TextureType]],
                  max_workers: Optional[int] = None) -> List[BatchItemResult]:
        """Convert many textures with a progress bar.

        Per-item failures are logged and recorded; cancellation aborts the
        batch with :class:`ConversionCancelled`.
        """
        workers = max(1, min(max_workers or self.config.max_workers, len(items) or 1))
        results: Dict[str, BatchItemResult] = {}

        def _run(name: str, image: Image, texture_type: TextureType) -> BatchItemResult:
            try:
                return BatchItemResult(name, self.convert(image, texture_type))
            except ConversionCancelled:
                raise
            except Exception as e:
                logger.error("Failed %s: %s", name, e, exc_info=True)
                return BatchItemResult(name, error=str(e))

        if workers <= 1:
            for name, image, texture_type in tqdm(items, desc="Converting"):
                self._check_cancel(f"before '{name}'")
                results[name] = _run(name, image, texture_type)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(_run, name, image, texture_type): name
                    for name, image, texture_type in items
                }
                with tqdm(total=len(futures), desc="Converting") as pbar:
                    pending = set(futures)
                    while pending:
                        done, pending = wait(pending, timeout=0.2, return_when=FIRST_EXCEPTION)
                        for future in done:
                            results[futures[future]] = future.result()
                            pbar.update(1)
                        if self._cancel_event.is_set():
                            for future in pending:
                                future.cancel()
                            raise ConversionCancelled("Batch cancelled by user request")

        failed = sum(1 for r in results.values() if not r.ok)
        logger.info("Batch complete: %d converted, %d failed", len(results) - failed, failed)
        return [results[name] for name, _, _ in items if name in results]
