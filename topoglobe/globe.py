# STDLIB Imports
import logging
import numpy as np

# Pyside Imports
from PySide6.QtOpenGLWidgets import QOpenGLWidget
from PySide6.QtCore import Qt, QTimer, Signal

# OpenGL Imports
from OpenGL.GL import *
from OpenGL.GLU import *

# This Project Imports
from topoglobe.asset_loader import CancelToken
from topoglobe.config import GlobeConfig
from topoglobe.coord_utils import GeoCoordinate, format_latlng, project, unproject, Vertex3D
from topoglobe.elevation import flat_grid, load_elevation
from topoglobe.errors import LoadCancelled
from topoglobe.scene import Layer, LineLayer, PointLayer, Scene, SphereLayer
from topoglobe.simplify import simplify_mesh
from topoglobe.sphere import build_sphere, sphere_segments
from topoglobe.textures import load_ocean_textures
from topoglobe.wireframe import graticule, line_segments, pin_vertices
from topoglobe.world_atlas import load_world_atlas

logger = logging.getLogger(__name__)

# label -> (color, width, alpha, radius offset)
LINE_STYLES = {
    'graticule': ((0.3, 0.3, 0.5), 1.0, 0.3, 0.0),
    'land': ((0.4, 0.9, 0.5), 1.5, 0.9, 0.02),
    'countries': ((0.8, 0.8, 0.8), 1.0, 0.5, 0.03),
    'coastlines': ((0.3, 0.7, 1.0), 1.0, 0.8, 0.05),
}

SIMPLIFY_STRIDE = {'high': 1, 'medium': 1, 'low': 2}
FALLBACK_SEGMENT_KM = 500.0


class GlobeWidget(QOpenGLWidget):
    '''PySide6 OpenGL Widget for displaying the wireframe globe'''

    infoSig = Signal(dict)
    sigLayerClicked = Signal(Layer)
    sigCoordinateClicked = Signal(str)
    sigLoaded = Signal(dict)

    def __init__(self, loader, config: GlobeConfig | None = None, parent=None):
        '''
        Parameters
        ----------
        loader : AssetLoader
            Shared loader owned by the application
        config : GlobeConfig
            Radius, quality and layer options
        parent : QWidget
            Owning widget
        '''
        super().__init__(parent)
        self.setMinimumSize(1000, 600)
        self.loader = loader
        self.config = config or GlobeConfig()

        self.radius = self.config.radius
        self.camera_distance = self.radius * 3.0
        self.camera_lon = 0.0  # degrees
        self.camera_lat = 20.0  # degrees
        self.last_pos = None  # For mouse dragging
        self.auto_rotate = True

        self.cancel_token = CancelToken()
        self.locations = []
        self.grid = None

        # Scene contains the layers to be drawn
        self.scene = Scene()
        self.scene.sigClicked.connect(self.on_layer_clicked)

        # Publish info to display on a timer
        self.info_timer = QTimer(self)
        self.info_timer.timeout.connect(self.publish_display_info)
        self.info_timer.start(1000)

        self.rotate_timer = QTimer(self)
        self.rotate_timer.timeout.connect(self.on_rotate)
        self.rotate_timer.start(30)

    def initializeGL(self):
        glEnable(GL_DEPTH_TEST)
        glDisable(GL_CULL_FACE)
        glEnable(GL_POINT_SMOOTH)
        glEnable(GL_LINE_SMOOTH)
        glClearColor(0.0, 0.0, 0.05, 1.0)

    def resizeGL(self, w, h):
        glViewport(0, 0, w, h)
        glMatrixMode(GL_PROJECTION)
        glLoadIdentity()
        gluPerspective(45, w / h if h > 0 else 1, self.radius * 0.05, self.radius * 20)
        glMatrixMode(GL_MODELVIEW)

    def camera_position(self) -> np.ndarray:
        return np.array(project(GeoCoordinate(self.camera_lon, self.camera_lat), self.camera_distance))

    def paintGL(self):
        glClear(GL_COLOR_BUFFER_BIT | GL_DEPTH_BUFFER_BIT)
        glLoadIdentity()

        cam_x, cam_y, cam_z = self.camera_position()
        # Y-up world
        gluLookAt(cam_x, cam_y, cam_z,
                  0, 0, 0,
                  0, 1, 0)

        self.scene.draw()

    #------------------------------------------------
    # Asset loading
    #------------------------------------------------
    async def load_assets(self) -> None:
        """Load elevation, boundaries and ocean textures concurrently, then build layers"""
        cfg = self.config
        sources = {
            'atlas': load_world_atlas(self.loader, cfg.resolution, cancel=self.cancel_token),
            'ocean': load_ocean_textures(self.loader, cfg.texture_paths, cancel=self.cancel_token),
        }
        if cfg.enable_elevation:
            sources['elevation'] = load_elevation(self.loader, cancel=self.cancel_token,
                                                  config=cfg.elevation)
        results = await self.loader.load_all(sources)

        if self.cancel_token.cancelled:
            logger.info("Globe closed while loading, discarding assets")
            return
        for name, result in results.items():
            if isinstance(result.error, LoadCancelled):
                return
            if not result.ok:
                logger.error("Could not load %s: %s", name, result.error)

        grid = results['elevation'].value if 'elevation' in results and results['elevation'].ok else flat_grid()
        atlas = results['atlas'].value if results['atlas'].ok else None
        ocean = results['ocean'].value if results['ocean'].ok else None
        self.build_layers(grid, atlas, ocean)

        summary = {
            'elevation': grid.is_loaded,
            'ocean': bool(ocean and ocean.is_loaded),
            'degraded_layers': sorted(atlas.failures) if atlas else ['land', 'countries', 'coastlines'],
        }
        self.sigLoaded.emit(summary)

    def build_layers(self, grid, atlas, ocean) -> None:
        '''Replace the scene's layers with ones built from loaded assets'''
        cfg = self.config
        self.grid = grid
        segments = sphere_segments(cfg.quality, self.radius)

        self.makeCurrent()
        mesh = build_sphere(self.radius, segments, segments, grid, cfg.elevation)
        texture = ocean.composite() if ocean is not None else None
        self.scene.add(SphereLayer('sphere', mesh, texture))

        meshes = {}
        if cfg.show_grid:
            meshes['graticule'] = graticule(self.radius, cfg.grid_spacing)
        if atlas is not None:
            meshes.update(atlas.layers())

        failures = atlas.failures if atlas is not None else {}
        for label, mesh in meshes.items():
            color, width, alpha, offset = LINE_STYLES[label]
            if label != 'graticule':
                mesh = simplify_mesh(mesh, SIMPLIFY_STRIDE[cfg.quality])
            # fallback outlines have continent-sized segments
            max_km = FALLBACK_SEGMENT_KM if label in failures else None
            vertices = line_segments(mesh, self.radius + offset, grid, cfg.elevation, max_km)
            self.scene.add(LineLayer(label, vertices, color, width, alpha))
            logger.debug("Layer %s: %d vertices", label, len(vertices))

        if atlas is not None and atlas.landmarks:
            self.scene.add(self._pin_layer('landmarks', list(atlas.landmarks.items())))
        self.doneCurrent()

        self.set_locations(self.locations)
        self.update()

    def set_locations(self, locations) -> None:
        """Show location pins

        Parameters
        ----------
        locations : list[Location]
            Places to mark, replacing any previous pins
        """
        self.locations = list(locations)
        positions, colors = pin_vertices(self.locations, self.radius)
        self.scene.add(PointLayer('locations', positions, colors, size=8.0,
                                  names=[loc.name for loc in self.locations]))
        self.update()

    def _pin_layer(self, label, named_coords):
        lonlat = np.array([[c.longitude, c.latitude] for _, c in named_coords])
        positions = np.array([project(GeoCoordinate(lon, lat), self.radius + 0.1)
                              for lon, lat in lonlat], dtype=np.float32)
        colors = np.tile(np.array([[1.0, 0.6, 0.2]], dtype=np.float32), (len(positions), 1))
        return PointLayer(label, positions, colors, size=6.0, names=[name for name, _ in named_coords])

    #-------------------------------------------------------
    # EVENT HANDLERS
    #-------------------------------------------------------
    def publish_display_info(self) -> None:
        '''Emit camera info'''
        self.infoSig.emit({'camera_lat': self.camera_lat,
                           'camera_lon': self.camera_lon,
                           'camera_distance': self.camera_distance,
                           'layers': [layer.label for layer in self.scene.layers]})

    def on_rotate(self):
        if self.auto_rotate:
            self.camera_lon = (self.camera_lon + 0.2 + 180.0) % 360.0 - 180.0
            self.update()

    def on_layer_clicked(self, layer):
        self.sigLayerClicked.emit(layer)

    def mousePressEvent(self, event):
        if event.button() == Qt.RightButton:
            pos = event.pos()
            ray_origin, ray_direction = self.mouse_to_ray(pos.x(), pos.y())
            hit = self.scene.pick(ray_origin, ray_direction)
            if isinstance(hit, SphereLayer):
                t = hit.intersect_ray(ray_origin, ray_direction)
                point = ray_origin + t * ray_direction
                coord = unproject(Vertex3D(*point), 0)
                self.sigCoordinateClicked.emit(format_latlng(coord))
        else:
            self.last_pos = event.pos()
            self.auto_rotate = False

    def mouseMoveEvent(self, event):
        if self.last_pos is None:
            self.last_pos = event.pos()
            return

        dx = event.pos().x() - self.last_pos.x()
        dy = event.pos().y() - self.last_pos.y()
        scale = (self.camera_distance - self.radius) / self.radius

        if event.buttons() & Qt.LeftButton:
            # Reversed for more natural movement
            self.camera_lon = (self.camera_lon - dx * 0.5 * scale + 180.0) % 360.0 - 180.0
            self.camera_lat = float(np.clip(self.camera_lat + dy * 0.5 * scale, -89, 89))
            self.update()

        self.last_pos = event.pos()

    def mouseReleaseEvent(self, event):
        self.last_pos = None

    def wheelEvent(self, event):
        delta = event.angleDelta().y()

        if delta == 0:
            return

        zoom_factor = 0.9 if delta > 0 else 1.1

        self.camera_distance *= zoom_factor
        self.camera_distance = float(np.clip(
            self.camera_distance,
            self.radius * 1.2,
            self.radius * 10
        ))
        self.update()

    def keyPressEvent(self, event):
        if event.key() == Qt.Key_Space:
            self.auto_rotate = not self.auto_rotate
        elif event.key() == Qt.Key_R:
            self.camera_lon = 0.0
            self.camera_lat = 20.0
            self.camera_distance = self.radius * 3.0
            self.auto_rotate = True
            self.update()

    def closeEvent(self, event):
        self.close_globe()
        super().closeEvent(event)

    def close_globe(self):
        '''Abandon pending loads and free GL resources'''
        self.cancel_token.cancel()
        self.info_timer.stop()
        self.rotate_timer.stop()
        self.makeCurrent()
        self.scene.clear()
        self.doneCurrent()

    def mouse_to_ray(self, mouse_x, mouse_y):
        """
        Convert mouse coordinates to a ray in world space.

        Parameters:
            mouse_x, mouse_y: Mouse coordinates in widget space

        Returns:
            (ray_origin, ray_direction): Both as numpy arrays in world coordinates
        """
        # Handle high DPI scaling
        dpr = self.devicePixelRatio()
        w = self.width() * dpr
        h = self.height() * dpr

        ndc_x = (2.0 * mouse_x * dpr) / w - 1.0
        ndc_y = 1.0 - (2.0 * mouse_y * dpr) / h

        eye = self.camera_position()
        world_up = np.array([0.0, 1.0, 0.0])

        forward = -eye / np.linalg.norm(eye)

        right = np.cross(forward, world_up)
        if np.linalg.norm(right) < 0.001:
            right = np.array([1.0, 0.0, 0.0])
        else:
            right = right / np.linalg.norm(right)

        up = np.cross(right, forward)
        up = up / np.linalg.norm(up)

        aspect = w / h if h > 0 else 1
        tan_half_fov = np.tan(np.radians(45.0) / 2.0)

        ray_dir_world = (ndc_x * aspect * tan_half_fov * right +
                         ndc_y * tan_half_fov * up +
                         forward)
        ray_dir_world = ray_dir_world / np.linalg.norm(ray_dir_world)

        return eye, ray_dir_world


# end class GlobeWidget
