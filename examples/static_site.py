"""
A plain static site: no generator, so HTML is copied from the sources and
minified on the way into the site root.

    sprat watch -c examples/static_site.py
"""
from pathlib import Path

from sprat import AssetGroup, InputBuildSettings


SETTINGS = InputBuildSettings(
    source_dir=Path(__file__).parent / 'static_site',
    site_root=Path(__file__).parent.parent / 'output' / 'static_site',
    styles=AssetGroup.of('css/**/*.scss', 'css'),
    scripts=AssetGroup.of('js/**/*.js', 'js'),
    vendor_scripts=AssetGroup.of('js/vendors/*.js', 'js'),
    images=AssetGroup.of('img/**/*', 'img'),
    # No fonts in this example.
    fonts=None,
    markup=AssetGroup.of('**/*.html', '.'),
    port=4000,
)
