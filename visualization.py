# visualization.py
"""
Handles the visualization of the flock using Pygame.

This is a thin viewer: it projects the published position buffer onto the
x-y plane and forwards key presses to the TransitionController as commands.
"""
import logging
from typing import Dict, Any

import numpy as np
import pygame

from constants import (
    WINDOW_SIZE, FPS, BACKGROUND_COLOR, PARTICLE_COLOR, HOLLOW_PARTICLE_COLOR,
    PREDATOR_COLOR, PARTICLE_PIXEL_SCALE,
)
from shape_sampler import ShapeSamplingError

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from simulation import Simulation
    from transition import TransitionController, ShapeTarget

# --- Data Contracts ---
#
# class Visualizer:
#   - __init__(self, params: Dict[str, Any], shape_target):
#     - Inputs: the "visualization" section of config.json, and the target
#       passed to form_shape when F or SPACE is pressed.
#     - Side Effects: Initializes Pygame and creates a resizable window.
#
#   - draw(self, simulation, controller) -> bool:
#     - Outputs: False once the user has quit, True otherwise.
#     - Side Effects: renders one frame, issues form_shape / disperse /
#       set_viewport_boundary on the controller in response to events.


class Visualizer:
    """
    Renders the particle positions with an orthographic camera.
    """
    def __init__(self, params: Dict[str, Any], shape_target: "ShapeTarget"):
        pygame.init()

        size = tuple(params.get('window_size', WINDOW_SIZE))
        self.pixels_per_unit = float(params.get('pixels_per_unit', 14.0))
        self.depth_half_extent = float(params.get('depth_half_extent', 20.0))
        self.trail_alpha = int(params.get('trail_alpha', 90))
        self.fps = int(params.get('fps', FPS))
        self.shape_target = shape_target

        self.screen = pygame.display.set_mode(size, pygame.RESIZABLE)
        pygame.display.set_caption("Murmuration")
        self.clock = pygame.time.Clock()
        self._build_surfaces(size)

        logging.info(f"Visualizer initialized with Pygame display ({size[0]}x{size[1]}).")

    def _build_surfaces(self, size) -> None:
        self.width, self.height = size
        # Fading overlay; leaves short trails behind moving particles.
        self.fade_surface = pygame.Surface(size, pygame.SRCALPHA)
        self.fade_surface.fill((*BACKGROUND_COLOR, self.trail_alpha))
        self.screen.fill(BACKGROUND_COLOR)

    def viewport_boundary(self):
        """The world-space box visible in the current window."""
        half_w = self.width / 2.0 / self.pixels_per_unit
        half_h = self.height / 2.0 / self.pixels_per_unit
        d = self.depth_half_extent
        return (-half_w, -half_h, -d), (half_w, half_h, d)

    def _to_screen(self, xyz: np.ndarray) -> np.ndarray:
        screen = np.empty((xyz.shape[0], 2), dtype=np.int32)
        screen[:, 0] = (self.width / 2.0 + xyz[:, 0] * self.pixels_per_unit).astype(np.int32)
        screen[:, 1] = (self.height / 2.0 - xyz[:, 1] * self.pixels_per_unit).astype(np.int32)
        return screen

    def _handle_key(self, key: int, controller: "TransitionController") -> bool:
        if key == pygame.K_ESCAPE:
            logging.info("ESC key pressed. Shutting down visualizer.")
            return False
        if key in (pygame.K_f, pygame.K_SPACE):
            try:
                controller.form_shape(self.shape_target)
            except ShapeSamplingError as e:
                logging.error(f"Could not form shape: {e}")
        elif key == pygame.K_d:
            controller.disperse()
        return True

    def draw(self, simulation: "Simulation", controller: "TransitionController") -> bool:
        """
        Draws all particles and predators, and handles events.

        Returns:
            bool: False if the simulation should exit, True otherwise.
        """
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False
            if event.type == pygame.KEYDOWN:
                if not self._handle_key(event.key, controller):
                    return False
            if event.type == pygame.VIDEORESIZE:
                self.screen = pygame.display.set_mode(event.size, pygame.RESIZABLE)
                self._build_surfaces(event.size)
                controller.set_viewport_boundary(*self.viewport_boundary())

        self.screen.blit(self.fade_surface, (0, 0))

        positions = simulation.positions
        points = self._to_screen(positions[:, :3]).tolist()
        radii = np.maximum((simulation.sizes * PARTICLE_PIXEL_SCALE).astype(np.int32), 1).tolist()
        filled = simulation.filled
        for i in range(len(points)):
            if filled[i]:
                pygame.draw.circle(self.screen, PARTICLE_COLOR, points[i], radii[i])
            else:
                pygame.draw.circle(self.screen, HOLLOW_PARTICLE_COLOR, points[i], radii[i], 1)

        predators = simulation.disruption.as_array()
        if predators.shape[0]:
            for point, strength in zip(self._to_screen(predators[:, :3]).tolist(), predators[:, 3]):
                pygame.draw.circle(self.screen, PREDATOR_COLOR, point, 3 + int(strength * 10), 1)

        pygame.display.flip()
        self.clock.tick(self.fps)
        return True

    def frame_seconds(self) -> float:
        """Duration of the last frame as measured by the Pygame clock."""
        return self.clock.get_time() / 1000.0

    def current_fps(self) -> float:
        return self.clock.get_fps()

    def close(self):
        """Shuts down Pygame."""
        pygame.quit()
