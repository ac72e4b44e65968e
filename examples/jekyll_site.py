"""
A Jekyll-backed site. Jekyll renders the pages into `_site`, then the asset
tasks fill in CSS, scripts, images and fonts, and the generated HTML is
minified in place.

    sprat run build -c examples/jekyll_site.py
"""
from pathlib import Path

from sprat import AssetGroup, InputBuildSettings


SETTINGS = InputBuildSettings(
    source_dir=Path(__file__).parent / 'jekyll_site',
    site_root=Path('_site'),
    site_command=['jekyll', 'build', '--drafts'],
    site_sources=['**/*.html', '**/*.yml', '**/*.json', '**/*.md'],
    styles=AssetGroup.of('css/**/*.scss', 'css'),
    scripts=AssetGroup.of('js/**/*.js', 'js'),
    vendor_scripts=AssetGroup.of('js/vendors/*.js', 'js'),
    images=AssetGroup.of('img/**/*', 'img'),
    fonts=AssetGroup.of('fonts/**/*', 'fonts'),
    # Relative to the site root, since Jekyll wrote these.
    markup=AssetGroup.of('**/*.html', '.'),
    bundle_name='scripts',
    browsers=['last 5 versions'],
    port=4000,
    task_timeout=120,
)
