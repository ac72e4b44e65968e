from __future__ import annotations

import shutil
import typing as t
from pathlib import Path

from .core import Step
from .dependencies import PipDependency

if t.TYPE_CHECKING:
    from PIL.Image import Image as PILImage


class ImageOptimizeStep(Step):
    """
    A lossless-by-default image compression Step using Pillow. JPEGs are
    re-encoded progressively, PNGs and GIFs are optimized, and formats Pillow
    cannot re-encode (SVG, ICO, ...) are copied through untouched. Animation
    frames and timing, EXIF data (orientation included) and ICC profiles
    survive the re-encode.
    """
    optimizable = {'.jpg', '.jpeg', '.png', '.gif', '.webp'}
    kept_metadata = ('exif', 'icc_profile')

    def __init__(self, quality: int | None = None, progressive: bool = True, interlaced: bool = True):
        """
        @quality only applies to lossy formats; by default JPEGs keep their
        original quantization tables.
        """
        self.quality = quality
        self.progressive = progressive
        self.interlaced = interlaced

    @classmethod
    def get_dependencies(cls):
        return super().get_dependencies() | {
            PipDependency(
                'Pillow',
                check_name='PIL'
            ),
        }

    def save_options(self, suffix: str) -> dict[str, t.Any]:
        if suffix in {'.jpg', '.jpeg'}:
            options: dict[str, t.Any] = {'optimize': True, 'progressive': self.progressive}
            if self.quality is None:
                options['quality'] = 'keep'
            else:
                options['quality'] = self.quality
            return options
        if suffix == '.gif':
            return {'optimize': True, 'interlace': self.interlaced}
        if suffix == '.webp':
            return {'lossless': self.quality is None, 'quality': self.quality or 80}
        return {'optimize': True}

    def source_options(self, img: PILImage) -> dict[str, t.Any]:
        """
        Options carrying over what a plain `save` would drop: metadata, and
        for animations every frame with its own duration.
        """
        options = {key: img.info[key] for key in self.kept_metadata if img.info.get(key)}
        if getattr(img, 'n_frames', 1) > 1:
            from PIL import ImageSequence

            durations = [frame.info.get('duration', 0) for frame in ImageSequence.Iterator(img)]
            img.seek(0)
            options['save_all'] = True
            options['duration'] = durations
            for key in ('loop', 'disposal', 'background'):
                if key in img.info:
                    options[key] = img.info[key]
        return options

    def __call__(self, path: Path, output_paths: list[Path]):
        from PIL import Image

        first = output_paths[0]
        first.parent.mkdir(parents=True, exist_ok=True)
        suffix = path.suffix.lower()
        if suffix not in self.optimizable:
            shutil.copy(path, first)
        else:
            with Image.open(path) as img:
                options = self.save_options(suffix)
                if options.get('quality') == 'keep' and img.format != 'JPEG':
                    del options['quality']
                options.update(self.source_options(img))
                img.save(first, **options)

        for target_path in output_paths[1:]:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy(first, target_path)
