"""
python -m topoglobe
Wireframe globe viewer.  --headless loads the whole pipeline without a
window and prints a summary of every layer.
"""
import argparse
import logging
import sys

from PySide6 import QtAsyncio

from topoglobe.asset_cache import AssetCache
from topoglobe.asset_loader import AssetLoader
from topoglobe.config import GlobeConfig, QUALITIES, RESOLUTIONS
from topoglobe.elevation import load_elevation
from topoglobe.logging_config import setup_logging
from topoglobe.network import AssetFetcher
from topoglobe.textures import load_ocean_textures
from topoglobe.world_atlas import load_world_atlas

logger = logging.getLogger("topoglobe")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="topoglobe", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--headless", action="store_true", help="load assets and print a summary")
    parser.add_argument("--resolution", choices=RESOLUTIONS, default="medium")
    parser.add_argument("--quality", choices=QUALITIES, default="medium")
    parser.add_argument("--no-elevation", action="store_true", help="draw an undisplaced sphere")
    parser.add_argument("--no-grid", action="store_true", help="hide the graticule")
    parser.add_argument("--log-file", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


async def headless_summary(loader: AssetLoader, config: GlobeConfig) -> dict:
    """Run every loader once and describe what came back"""
    results = await loader.load_all({
        'elevation': load_elevation(loader, config=config.elevation),
        'atlas': load_world_atlas(loader, config.resolution),
        'ocean': load_ocean_textures(loader, config.texture_paths),
    })
    summary = {}
    for name, result in results.items():
        if not result.ok:
            summary[name] = f"failed: {result.error}"
        elif name == 'elevation':
            grid = result.value
            summary[name] = f"{grid.width}x{grid.height} loaded={grid.is_loaded}"
        elif name == 'atlas':
            atlas = result.value
            for layer, mesh in atlas.layers().items():
                fell_back = " (fallback)" if layer in atlas.failures else ""
                summary[layer] = f"{len(mesh)} rings, {mesh.point_count} points{fell_back}"
            if atlas.landmarks:
                summary['landmarks'] = ", ".join(atlas.landmarks)
        else:
            ocean = result.value
            summary[name] = f"loaded={ocean.is_loaded} errors={ocean.has_errors}"
    summary['cache'] = f"{len(loader.cache)} entries"
    return summary


async def run_headless(loader: AssetLoader, config: GlobeConfig) -> None:
    try:
        summary = await headless_summary(loader, config)
    finally:
        loader.fetcher.shutdown()
    for name, line in summary.items():
        print(f"{name:>12}: {line}")


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    config = GlobeConfig(resolution=args.resolution, quality=args.quality,
                         enable_elevation=not args.no_elevation, show_grid=not args.no_grid)
    cache = AssetCache()
    loader = AssetLoader(cache, AssetFetcher(), config.retry)

    if args.headless:
        from PySide6.QtCore import QCoreApplication
        app = QCoreApplication(sys.argv[:1])
        QtAsyncio.run(run_headless(loader, config), keep_running=False)
        cache.clear()
        return 0

    from PySide6.QtWidgets import QApplication
    from topoglobe.globe import GlobeWidget

    app = QApplication(sys.argv[:1])
    globe = GlobeWidget(loader, config)
    globe.setWindowTitle("topoglobe")
    globe.sigCoordinateClicked.connect(lambda text: logger.info("Clicked %s", text))
    app.aboutToQuit.connect(loader.fetcher.shutdown)
    globe.show()

    QtAsyncio.run(globe.load_assets(), keep_running=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
