from OpenGL.GL import *
from PySide6.QtCore import QObject, Signal
import numpy as np
from contextlib import contextmanager

from topoglobe.sphere import SphereMesh
from topoglobe.textures import TextureImage


@contextmanager
def gl_state_guard() -> None:
    """Context manager to save/restore OpenGL state when drawing layers"""
    depth_test = glIsEnabled(GL_DEPTH_TEST)
    lighting = glIsEnabled(GL_LIGHTING)
    texture_2d = glIsEnabled(GL_TEXTURE_2D)
    blend = glIsEnabled(GL_BLEND)
    line_width = glGetFloatv(GL_LINE_WIDTH)
    point_size = glGetFloatv(GL_POINT_SIZE)
    color = glGetFloatv(GL_CURRENT_COLOR)

    try:
        yield
    finally:
        if depth_test:
            glEnable(GL_DEPTH_TEST)
        else:
            glDisable(GL_DEPTH_TEST)
        if lighting:
            glEnable(GL_LIGHTING)
        else:
            glDisable(GL_LIGHTING)
        if texture_2d:
            glEnable(GL_TEXTURE_2D)
        else:
            glDisable(GL_TEXTURE_2D)
        if blend:
            glEnable(GL_BLEND)
        else:
            glDisable(GL_BLEND)
        glLineWidth(float(line_width))
        glPointSize(float(point_size))
        glColor4fv(color)


class Layer:
    """Base class for everything drawn on the globe

    Attributes
    ----------
    label : str
        Name for this layer
    visible : bool
        Skipped by Scene.draw when False
    """

    def __init__(self, label):
        self.label = label
        self.visible = True

    def draw(self) -> None:
        """Draw this layer"""
        raise NotImplementedError

    def intersect_ray(self, ray_origin: np.ndarray, ray_direction: np.ndarray) -> float | None:
        """Distance along the ray to this layer, None if missed or not pickable"""
        return None

    def dispose(self) -> None:
        """Release GL resources"""

    def __str__(self):
        return f'{self.__class__.__name__} : {self.label}'


# =============================================================================
# Boundary lines
# =============================================================================

class LineLayer(Layer):
    """Segment-pair vertex buffer drawn as GL_LINES"""

    def __init__(self, label: str, vertices: np.ndarray, color=(1.0, 1.0, 1.0),
                 width: float = 1.0, alpha: float = 1.0):
        '''
        Parameters
        ----------
        label : str
            Name of this layer
        vertices : np.ndarray
            (2 * segments, 3) float32, see wireframe.line_segments
        color : [float,float,float]
            Line color (0:1, 0:1, 0:1)
        width : float
            Line width in pixels
        alpha : float
            Line opacity
        '''
        super().__init__(label)
        self.vertices = np.ascontiguousarray(vertices, dtype=np.float32)
        self.color = color
        self.width = width
        self.alpha = alpha

    def draw(self) -> None:
        if len(self.vertices) == 0:
            return
        with gl_state_guard():
            glDisable(GL_LIGHTING)
            glDisable(GL_TEXTURE_2D)
            glEnable(GL_BLEND)
            glBlendFunc(GL_SRC_ALPHA, GL_ONE_MINUS_SRC_ALPHA)

            glColor4f(*self.color, self.alpha)
            glLineWidth(self.width)

            glEnableClientState(GL_VERTEX_ARRAY)
            glVertexPointer(3, GL_FLOAT, 0, self.vertices)
            glDrawArrays(GL_LINES, 0, len(self.vertices))
            glDisableClientState(GL_VERTEX_ARRAY)


# =============================================================================
# Location pins
# =============================================================================

class PointLayer(Layer):
    """Coloured point markers"""

    def __init__(self, label: str, positions: np.ndarray, colors: np.ndarray,
                 size: float = 10.0, pick_radius: float = 0.3, names=None):
        '''
        Parameters
        ----------
        label : str
            Name of this layer
        positions : np.ndarray
            (n, 3) float32 marker positions
        colors : np.ndarray
            (n, 3) float32 RGB per marker
        size : float
            Point size in pixels
        pick_radius : float
            Scene units within which a click hits a marker
        names : list[str]
            Per-marker name, reported through picked
        '''
        super().__init__(label)
        self.positions = np.ascontiguousarray(positions, dtype=np.float32)
        self.colors = np.ascontiguousarray(colors, dtype=np.float32)
        self.size = size
        self.pick_radius = pick_radius
        self.names = list(names) if names is not None else []
        self.picked = None

    def draw(self) -> None:
        if len(self.positions) == 0:
            return
        with gl_state_guard():
            glDisable(GL_LIGHTING)
            glDisable(GL_TEXTURE_2D)
            glPointSize(self.size)

            glEnableClientState(GL_VERTEX_ARRAY)
            glEnableClientState(GL_COLOR_ARRAY)
            glVertexPointer(3, GL_FLOAT, 0, self.positions)
            glColorPointer(3, GL_FLOAT, 0, self.colors)
            glDrawArrays(GL_POINTS, 0, len(self.positions))
            glDisableClientState(GL_COLOR_ARRAY)
            glDisableClientState(GL_VERTEX_ARRAY)

    def intersect_ray(self, ray_origin: np.ndarray, ray_direction: np.ndarray) -> float | None:
        """
        Test if ray passes within pick_radius of any marker.

        Parameters
        ----------
            ray_origin: np.ndarray
                numpy array [x, y, z] in scene units
            ray_direction: np.ndarray
                normalized numpy array [x, y, z]

        Returns
        -------
            distance: float | None
                to the nearest hit marker, None if miss
        """
        self.picked = None
        best = None
        for i, center in enumerate(self.positions.astype(np.float64)):
            oc = ray_origin - center
            a = np.dot(ray_direction, ray_direction)
            b = 2.0 * np.dot(oc, ray_direction)
            c = np.dot(oc, oc) - self.pick_radius ** 2

            discriminant = b * b - 4 * a * c
            if discriminant < 0:
                continue
            t = (-b - np.sqrt(discriminant)) / (2 * a)
            if t >= 0 and (best is None or t < best):
                best = t
                self.picked = self.names[i] if i < len(self.names) else i
        return best


# =============================================================================
# Globe surface
# =============================================================================

class SphereLayer(Layer):
    """Indexed sphere mesh, textured when an ocean texture is available"""

    def __init__(self, label: str, mesh: SphereMesh, texture: TextureImage | None = None,
                 color=(0.05, 0.15, 0.35)):
        super().__init__(label)
        self.mesh = mesh
        self.texture = texture
        self.color = color

    def draw(self) -> None:
        mesh = self.mesh
        with gl_state_guard():
            glDisable(GL_LIGHTING)
            glEnable(GL_BLEND)
            glBlendFunc(GL_SRC_ALPHA, GL_ONE_MINUS_SRC_ALPHA)

            glEnableClientState(GL_VERTEX_ARRAY)
            glEnableClientState(GL_NORMAL_ARRAY)
            glVertexPointer(3, GL_FLOAT, 0, mesh.vertices)
            glNormalPointer(GL_FLOAT, 0, mesh.normals)

            if self.texture is not None:
                glEnable(GL_TEXTURE_2D)
                self.texture.bind()
                glColor4f(1.0, 1.0, 1.0, 1.0)
                glEnableClientState(GL_TEXTURE_COORD_ARRAY)
                glTexCoordPointer(2, GL_FLOAT, 0, mesh.uvs)
            else:
                glDisable(GL_TEXTURE_2D)
                glColor3f(*self.color)

            glDrawElements(GL_TRIANGLES, mesh.indices.size, GL_UNSIGNED_INT, mesh.indices)

            if self.texture is not None:
                glDisableClientState(GL_TEXTURE_COORD_ARRAY)
                glBindTexture(GL_TEXTURE_2D, 0)
            glDisableClientState(GL_NORMAL_ARRAY)
            glDisableClientState(GL_VERTEX_ARRAY)

    def intersect_ray(self, ray_origin: np.ndarray, ray_direction: np.ndarray) -> float | None:
        """Distance to the sphere through the highest displaced vertex, used to pick surface coordinates"""
        radius = float(np.max(np.linalg.norm(self.mesh.vertices, axis=1)))
        b = 2.0 * np.dot(ray_origin, ray_direction)
        c = np.dot(ray_origin, ray_origin) - radius ** 2
        discriminant = b * b - 4 * c
        if discriminant < 0:
            return None
        t = (-b - np.sqrt(discriminant)) / 2.0
        return t if t >= 0 else None

    def dispose(self) -> None:
        if self.texture is not None:
            self.texture.dispose()


# =============================================================================
# Scene Container
# =============================================================================

class Scene(QObject):
    """Container for all layers"""

    sigClicked = Signal(Layer)

    def __init__(self):
        super().__init__()
        self.layers = []

    def add(self, layer):
        """Add a layer, replacing any layer with the same label"""
        self.remove(self.get(layer.label))
        self.layers.append(layer)

    def get(self, label):
        for layer in self.layers:
            if layer.label == label:
                return layer
        return None

    def remove(self, layer):
        """Remove a layer from the scene"""
        if layer in self.layers:
            self.layers.remove(layer)
            layer.dispose()

    def clear(self):
        """Remove all layers"""
        for layer in self.layers:
            layer.dispose()
        self.layers.clear()

    def draw(self):
        """Draw all visible layers"""
        for layer in self.layers:
            if layer.visible:
                layer.draw()

    def pick(self, ray_origin, ray_direction):
        """
        Find closest pickable layer hit by ray and emit sigClicked for it.
        """
        closest_layer = None
        closest_dist = float('inf')

        for layer in self.layers:
            dist = layer.intersect_ray(ray_origin, ray_direction)
            if dist is not None and dist < closest_dist:
                closest_dist = dist
                closest_layer = layer

        if closest_layer is not None:
            self.sigClicked.emit(closest_layer)
        return closest_layer
