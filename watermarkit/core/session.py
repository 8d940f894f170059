"""
Session State
=============
Single source of truth for one watermarking session: the uploaded images,
the watermark catalog and active handle, the placement settings, per-image
custom placements, and the preview job-token counter.

All mutation goes through named operations. Each one validates its input
first, applies the change, bumps the job token (so any preview run still in
flight becomes stale) and notifies subscribers.

Compliance mode is enforced when it is toggled and on every later mutation:
the anchor never resolves to CENTER, custom points are snapped to the
nearest corner, and only approved watermarks can be active.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from watermarkit.config import AppConfig
from watermarkit.core.ingest import IncomingFile
from watermarkit.core.positioning import (
    Anchor, CustomPoint, Placement, PlacementSettings, nearest_corner
)
from watermarkit.core.watermark import CatalogEntry, WatermarkHandle

logger = logging.getLogger(__name__)


class SessionChange(Enum):
    IMAGES_ADDED = "images_added"
    IMAGE_REMOVED = "image_removed"
    IMAGES_CLEARED = "images_cleared"
    WATERMARK = "watermark"
    SETTINGS = "settings"
    CUSTOM_PLACEMENT = "custom_placement"
    COMPLIANCE = "compliance"
    CATALOG = "catalog"
    REFRESH = "refresh"


Listener = Callable[[SessionChange, Optional[str]], None]


@dataclass
class UploadedImage:
    """One image in the session. Only ``custom_placement`` is mutable."""
    identifier: str
    mime_type: str
    byte_size: int
    width: int
    height: int
    data: bytes = field(repr=False)
    converted: bool = False
    custom_placement: Optional[Placement] = None


@dataclass(frozen=True)
class ImageEntry:
    """Immutable per-image view handed to worker threads."""
    identifier: str
    data: bytes = field(repr=False)
    width: int = 0
    height: int = 0
    placement: Optional[Placement] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything a preview or export run needs, frozen at job start."""
    images: Tuple[ImageEntry, ...]
    watermark: Optional[WatermarkHandle]
    settings: PlacementSettings


class SessionState:
    """
    In-memory session shared by the UI binding layer and the pipelines.

    Mutated only from the GUI thread; workers receive a SessionSnapshot.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        config = config or AppConfig()

        fallback = Anchor.parse(config.compliance_fallback_anchor)
        if not fallback.is_corner:
            raise ValueError("Compliance fallback anchor must be a corner")

        self._images: Dict[str, UploadedImage] = {}
        self._catalog: List[CatalogEntry] = []
        self._watermark: Optional[WatermarkHandle] = None
        self._handles: Dict[str, WatermarkHandle] = {}
        self._settings = PlacementSettings(
            opacity=config.default_opacity,
            scale=config.default_scale,
            anchor=Anchor.parse(config.default_anchor)
        )
        self._fallback_anchor = fallback
        self._approved_names = set(config.compliance_watermarks)

        # Free-placement values replaced by compliance coercion, restored
        # when compliance is switched off unless the user changed them since.
        self._coerced_anchor: Optional[Anchor] = None
        self._coerced_points: Dict[str, Placement] = {}
        self._coerced_watermark: Optional[WatermarkHandle] = None

        self._job_token = 0
        self._listeners: List[Listener] = []

    # ===== Read access =====

    @property
    def images(self) -> List[UploadedImage]:
        return list(self._images.values())

    @property
    def image_count(self) -> int:
        return len(self._images)

    def get_image(self, identifier: str) -> Optional[UploadedImage]:
        return self._images.get(identifier)

    @property
    def watermark(self) -> Optional[WatermarkHandle]:
        return self._watermark

    @property
    def settings(self) -> PlacementSettings:
        return self._settings

    @property
    def compliance(self) -> bool:
        return self._settings.compliance

    @property
    def catalog(self) -> List[CatalogEntry]:
        return list(self._catalog)

    def available_watermarks(self) -> List[CatalogEntry]:
        """Catalog entries selectable right now (approved subset in compliance mode)."""
        if not self.compliance:
            return list(self._catalog)
        return [entry for entry in self._catalog if self.is_approved(entry.name)]

    def is_approved(self, name: str) -> bool:
        return name in self._approved_names

    # ===== Change notification =====

    def subscribe(self, listener: Listener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, change: SessionChange, identifier: Optional[str] = None):
        for listener in list(self._listeners):
            listener(change, identifier)

    def _invalidate(self, change: SessionChange, identifier: Optional[str] = None):
        self._job_token += 1
        self._notify(change, identifier)

    def request_refresh(self):
        """Explicit user request to regenerate previews."""
        self._invalidate(SessionChange.REFRESH)

    # ===== Job tokens =====

    @property
    def latest_token(self) -> int:
        return self._job_token

    def issue_job_token(self) -> int:
        """Issue a new token; every earlier token becomes stale."""
        self._job_token += 1
        return self._job_token

    def is_current(self, token: int) -> bool:
        return token == self._job_token

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            images=tuple(
                ImageEntry(
                    identifier=image.identifier,
                    data=image.data,
                    width=image.width,
                    height=image.height,
                    placement=image.custom_placement
                )
                for image in self._images.values()
            ),
            watermark=self._watermark,
            settings=self._settings
        )

    # ===== Images =====

    def add_images(self, files: Iterable[IncomingFile]) -> List[UploadedImage]:
        """
        Append images in order, rejecting duplicate identifiers.

        Returns:
            The images actually added.
        """
        added: List[UploadedImage] = []
        for incoming in files:
            if incoming.name in self._images:
                logger.warning("Duplicate image rejected: %s", incoming.name)
                continue

            image = UploadedImage(
                identifier=incoming.name,
                mime_type=incoming.mime_type,
                byte_size=incoming.size,
                width=incoming.width,
                height=incoming.height,
                data=incoming.data,
                converted=incoming.converted
            )
            self._images[image.identifier] = image
            added.append(image)

        if added:
            logger.info("Added %d image(s), %d in session", len(added), len(self._images))
            self._invalidate(SessionChange.IMAGES_ADDED)
        return added

    def remove_image(self, identifier: str) -> bool:
        """Remove one image together with its custom placement."""
        image = self._images.pop(identifier, None)
        if image is None:
            logger.debug("remove_image: unknown identifier %s", identifier)
            return False

        image.custom_placement = None
        self._coerced_points.pop(identifier, None)
        self._invalidate(SessionChange.IMAGE_REMOVED, identifier)
        return True

    def clear(self):
        """Remove every image."""
        if not self._images:
            return
        self._images.clear()
        self._coerced_points.clear()
        self._invalidate(SessionChange.IMAGES_CLEARED)

    # ===== Watermark =====

    def set_catalog(self, entries: Iterable[CatalogEntry]):
        self._catalog = list(entries)
        self._notify(SessionChange.CATALOG)
        if self.compliance and not self._watermark_allowed(self._watermark):
            self._apply_watermark(self._first_approved_handle())

    def select_watermark(self, handle: Optional[WatermarkHandle]):
        """
        Swap the active watermark.

        In compliance mode a non-approved handle is replaced by the first
        approved catalog entry.
        """
        if self.compliance:
            self._coerced_watermark = None
            if not self._watermark_allowed(handle):
                logger.debug("Watermark %r not approved, coercing",
                             handle.name if handle else None)
                handle = self._first_approved_handle()
        self._apply_watermark(handle)

    def _apply_watermark(self, handle: Optional[WatermarkHandle]):
        if handle is self._watermark:
            return
        self._watermark = handle
        self._invalidate(SessionChange.WATERMARK)

    def _watermark_allowed(self, handle: Optional[WatermarkHandle]) -> bool:
        return handle is not None and self.is_approved(handle.name)

    def handle_for(self, entry: CatalogEntry) -> WatermarkHandle:
        """Cached handle for a catalog entry, so each watermark decodes once."""
        handle = self._handles.get(entry.name)
        if handle is None or handle.source != entry.url:
            handle = entry.to_handle()
            self._handles[entry.name] = handle
        return handle

    def _first_approved_handle(self) -> Optional[WatermarkHandle]:
        for entry in self._catalog:
            if self.is_approved(entry.name):
                return self.handle_for(entry)
        logger.warning("No compliance-approved watermark in catalog")
        return None

    # ===== Placement settings =====

    def update_settings(
            self,
            opacity: Optional[float] = None,
            scale: Optional[float] = None,
            anchor: Union[Anchor, str, None] = None
    ) -> PlacementSettings:
        """
        Replace the placement settings atomically.

        Raises:
            ValueError: On an unknown anchor or non-numeric value. The
                session is left unchanged.
        """
        changes = {}
        if opacity is not None:
            changes["opacity"] = float(opacity)
        if scale is not None:
            changes["scale"] = float(scale)
        if anchor is not None:
            parsed = Anchor.parse(anchor)
            if self.compliance:
                self._coerced_anchor = None
                if not parsed.is_corner:
                    logger.debug("Center anchor coerced to %s", self._fallback_anchor.value)
                    parsed = self._fallback_anchor
            changes["anchor"] = parsed

        updated = replace(self._settings, **changes)
        if updated != self._settings:
            self._settings = updated
            self._invalidate(SessionChange.SETTINGS)
        return self._settings

    # ===== Custom placement =====

    def set_custom_placement(
            self,
            identifier: str,
            point: Union[CustomPoint, Tuple[float, float]]
    ):
        """
        Override the global anchor for one image.

        Raises:
            KeyError: If the identifier is not in the session.
        """
        image = self._images[identifier]
        if not isinstance(point, CustomPoint):
            point = CustomPoint(*point)

        placement: Placement = point
        if self.compliance:
            self._coerced_points.pop(identifier, None)
            placement = nearest_corner(point)

        if image.custom_placement == placement:
            return
        image.custom_placement = placement
        self._invalidate(SessionChange.CUSTOM_PLACEMENT, identifier)

    def clear_custom_placement(self, identifier: str):
        image = self._images[identifier]
        self._coerced_points.pop(identifier, None)
        if image.custom_placement is None:
            return
        image.custom_placement = None
        self._invalidate(SessionChange.CUSTOM_PLACEMENT, identifier)

    # ===== Compliance =====

    def set_compliance(self, enabled: bool):
        """
        Toggle compliance mode.

        Enabling coerces anchor, custom points and watermark immediately.
        Disabling restores the free-placement values that were coerced,
        except those the user changed while compliance was on.
        """
        enabled = bool(enabled)
        if enabled == self.compliance:
            return

        if enabled:
            self._enter_compliance()
        else:
            self._leave_compliance()

        self._invalidate(SessionChange.COMPLIANCE)

    def _enter_compliance(self):
        anchor = self._settings.anchor
        if not anchor.is_corner:
            self._coerced_anchor = anchor
            anchor = self._fallback_anchor
        self._settings = replace(self._settings, anchor=anchor, compliance=True)

        for image in self._images.values():
            if isinstance(image.custom_placement, CustomPoint):
                self._coerced_points[image.identifier] = image.custom_placement
                image.custom_placement = nearest_corner(image.custom_placement)

        if not self._watermark_allowed(self._watermark):
            self._coerced_watermark = self._watermark
            self._watermark = self._first_approved_handle()

        logger.info("Compliance mode on (anchor=%s)", anchor.value)

    def _leave_compliance(self):
        anchor = self._coerced_anchor or self._settings.anchor
        self._settings = replace(self._settings, anchor=anchor, compliance=False)

        for identifier, point in self._coerced_points.items():
            image = self._images.get(identifier)
            if image is not None:
                image.custom_placement = point

        if self._coerced_watermark is not None:
            self._watermark = self._coerced_watermark

        self._coerced_anchor = None
        self._coerced_points.clear()
        self._coerced_watermark = None
        logger.info("Compliance mode off")
