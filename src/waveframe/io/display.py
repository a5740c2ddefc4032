"""
Pygame preview window.

Shows rendered frames and turns keyboard input into playback and
style commands for the live session.
"""

import logging
from typing import Callable, Optional

import pygame
from PIL import Image

from waveframe.core.clock import Scheduler
from waveframe.visualizers.styles import RenderStyle

logger = logging.getLogger(__name__)

_STYLE_KEYS = {
    getattr(pygame, f"K_{i + 1}"): style for i, style in enumerate(RenderStyle)
}


class RefreshScheduler(Scheduler):
    """Waits for the next display refresh at ``fps``."""

    def __init__(self, fps: int = 60):
        self.fps = fps
        self._clock = pygame.time.Clock()

    def wait(self) -> None:
        self._clock.tick(self.fps)


class PygameDisplay:
    """
    Frame sink that draws into a pygame window.

    Callbacks receive the command: ``on_toggle()``, ``on_seek(delta)``,
    ``on_style(style)``, ``on_next_preset()``, ``on_toggle_transparent()``,
    ``on_quit()``.
    """

    # Checkerboard shown behind transparent frames
    CHECKER = ((40, 40, 40), (60, 60, 60))

    def __init__(self, width: int, height: int, title: str = "waveframe"):
        self.width = width
        self.height = height
        self.title = title
        self.closed = False
        self.screen: Optional[pygame.Surface] = None
        self._backdrop: Optional[pygame.Surface] = None

        self.on_toggle: Optional[Callable[[], None]] = None
        self.on_seek: Optional[Callable[[float], None]] = None
        self.on_style: Optional[Callable[[RenderStyle], None]] = None
        self.on_next_preset: Optional[Callable[[], None]] = None
        self.on_toggle_transparent: Optional[Callable[[], None]] = None
        self.on_quit: Optional[Callable[[], None]] = None

    def open(self) -> None:
        pygame.display.init()
        self.screen = pygame.display.set_mode((self.width, self.height))
        pygame.display.set_caption(self.title)
        self._backdrop = self._checkerboard()

    def _checkerboard(self, cell: int = 16) -> pygame.Surface:
        surface = pygame.Surface((self.width, self.height))
        for y in range(0, self.height, cell):
            for x in range(0, self.width, cell):
                color = self.CHECKER[((x // cell) + (y // cell)) % 2]
                surface.fill(color, (x, y, cell, cell))
        return surface

    def show(self, frame: Image.Image, position: float) -> None:
        """Blit a frame and process pending input."""
        if self.screen is None:
            self.open()
        surface = pygame.image.frombuffer(frame.tobytes(), frame.size, "RGBA")
        self.screen.blit(self._backdrop, (0, 0))
        self.screen.blit(surface, (0, 0))
        pygame.display.flip()
        self.poll()

    __call__ = show

    def _emit(self, callback, *args) -> None:
        if callback is not None:
            callback(*args)

    def poll(self) -> None:
        """Translate queued pygame events into callbacks."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.closed = True
                self._emit(self.on_quit)
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    self.closed = True
                    self._emit(self.on_quit)
                elif event.key == pygame.K_SPACE:
                    self._emit(self.on_toggle)
                elif event.key == pygame.K_LEFT:
                    self._emit(self.on_seek, -5.0)
                elif event.key == pygame.K_RIGHT:
                    self._emit(self.on_seek, 5.0)
                elif event.key == pygame.K_c:
                    self._emit(self.on_next_preset)
                elif event.key == pygame.K_t:
                    self._emit(self.on_toggle_transparent)
                elif event.key in _STYLE_KEYS:
                    self._emit(self.on_style, _STYLE_KEYS[event.key])

    def close(self) -> None:
        if self.screen is not None:
            pygame.display.quit()
        self.screen = None
        self.closed = True
