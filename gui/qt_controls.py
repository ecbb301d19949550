"""PySide6 control panel for the thermal site viewer.

The panel never calls into the navigation core. User actions are queued as
:class:`UiEvent` objects and drained by the application loop through
:meth:`ThermalControlPanel.pop_event`; the loop pushes a fresh
:class:`ViewState` back with :meth:`ThermalControlPanel.render`.

This widget integrates with an external loop by calling
QApplication.processEvents() inside poll(), so it does not block.
"""
from __future__ import annotations

import sys
from collections import deque
from typing import Deque, Optional, Sequence

from PIL import Image
from PIL.ImageQt import ImageQt
from PySide6 import QtCore, QtWidgets
from PySide6.QtGui import QMouseEvent, QPixmap

from thermal.common import GeoBoundingBox, Site
from thermal.events import EventKind, UiEvent
from thermal.interface import Notice, ViewState
from thermal.legend import LEGEND_TITLE, colorbar_image
from thermal.navigation import LOADING_TEXT
from thermal.url_state import MAX_ZOOM, MIN_ZOOM

from .preview import pixel_to_lon_lat

SITE_PLACEHOLDER = "Select a site..."
RESET_LABEL = "Select New Site"


class PreviewLabel(QtWidgets.QLabel):
    """Image label reporting clicks in pixmap coordinates."""

    clicked = QtCore.Signal(float, float, int, int)

    def mousePressEvent(self, event: QMouseEvent) -> None:  # noqa: N802 - Qt override
        pixmap = self.pixmap()
        if pixmap is not None and not pixmap.isNull():
            pos = event.position()
            self.clicked.emit(float(pos.x()), float(pos.y()), self.width(), self.height())
        super().mousePressEvent(event)


class ThermalControlPanel(QtCore.QObject):
    def __init__(self, sites: Sequence[Site], *, preview_size: int = 512) -> None:
        super().__init__()
        self._app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv or [])

        self._sites = tuple(sites)
        self._closed = False
        self._updating = False
        self._events: Deque[UiEvent] = deque()
        self._last_key: Optional[tuple] = None
        self._preview_region: Optional[GeoBoundingBox] = None

        self._win = QtWidgets.QWidget()
        self._win.setWindowTitle("Thermal Site Viewer")
        self._win.setAttribute(QtCore.Qt.WidgetAttribute.WA_DeleteOnClose, True)
        self._win.setMinimumSize(440 + preview_size, 640)

        outer = QtWidgets.QHBoxLayout(self._win)
        outer.setContentsMargins(12, 12, 12, 12)

        side = QtWidgets.QWidget()
        side.setFixedWidth(420)
        layout = QtWidgets.QGridLayout(side)
        layout.setHorizontalSpacing(8)
        layout.setVerticalSpacing(6)

        row = 0
        layout.addWidget(QtWidgets.QLabel("Site"), row, 0)
        self._site_combo = QtWidgets.QComboBox()
        self._site_combo.addItem(SITE_PLACEHOLDER)
        self._site_combo.addItems([site.name for site in self._sites])
        layout.addWidget(self._site_combo, row, 1)

        row += 1
        self._reset_btn = QtWidgets.QPushButton(RESET_LABEL)
        layout.addWidget(self._reset_btn, row, 0, 1, 2)

        row += 1
        self._status_label = QtWidgets.QLabel("Click a site marker or pick a site.")
        self._status_label.setWordWrap(True)
        layout.addWidget(self._status_label, row, 0, 1, 2)

        row += 1
        layout.addWidget(self._hline(), row, 0, 1, 2)

        row += 1
        self._date_label = QtWidgets.QLabel("")
        layout.addWidget(self._date_label, row, 0, 1, 2)

        row += 1
        self._count_label = QtWidgets.QLabel("")
        layout.addWidget(self._count_label, row, 0, 1, 2)

        row += 1
        nav_row = QtWidgets.QHBoxLayout()
        self._back_btn = QtWidgets.QPushButton("Back")
        self._forward_btn = QtWidgets.QPushButton("Forward")
        nav_row.addWidget(self._back_btn)
        nav_row.addWidget(self._forward_btn)
        nav_row.addStretch(1)
        layout.addLayout(nav_row, row, 0, 1, 2)

        row += 1
        self._slider = QtWidgets.QSlider(QtCore.Qt.Orientation.Horizontal)
        self._slider.setRange(0, 0)
        layout.addWidget(self._slider, row, 0, 1, 2)

        row += 1
        layout.addWidget(self._hline(), row, 0, 1, 2)

        row += 1
        layout.addWidget(QtWidgets.QLabel(LEGEND_TITLE), row, 0, 1, 2)

        row += 1
        legend_row = QtWidgets.QHBoxLayout()
        self._min_edit = QtWidgets.QLineEdit()
        self._min_edit.setFixedWidth(70)
        self._mid_label = QtWidgets.QLabel("")
        self._mid_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self._max_edit = QtWidgets.QLineEdit()
        self._max_edit.setFixedWidth(70)
        legend_row.addWidget(self._min_edit)
        legend_row.addWidget(self._mid_label, 1)
        legend_row.addWidget(self._max_edit)
        layout.addLayout(legend_row, row, 0, 1, 2)

        row += 1
        self._colorbar = QtWidgets.QLabel()
        self._colorbar.setScaledContents(True)
        self._colorbar.setFixedHeight(12)
        self._colorbar.setPixmap(QPixmap.fromImage(ImageQt(colorbar_image(width=200, height=10).convert("RGBA"))))
        layout.addWidget(self._colorbar, row, 0, 1, 2)

        row += 1
        layout.addWidget(self._hline(), row, 0, 1, 2)

        row += 1
        inspector_row = QtWidgets.QHBoxLayout()
        self._inspector_label = QtWidgets.QLabel("")
        self._inspector_close = QtWidgets.QPushButton("Close")
        inspector_row.addWidget(self._inspector_label, 1)
        inspector_row.addWidget(self._inspector_close)
        layout.addLayout(inspector_row, row, 0, 1, 2)

        row += 1
        view_row = QtWidgets.QHBoxLayout()
        self._lat_edit = QtWidgets.QLineEdit()
        self._lat_edit.setPlaceholderText("latitude")
        self._lon_edit = QtWidgets.QLineEdit()
        self._lon_edit.setPlaceholderText("longitude")
        self._zoom_spin = QtWidgets.QSpinBox()
        self._zoom_spin.setRange(MIN_ZOOM, MAX_ZOOM)
        self._view_btn = QtWidgets.QPushButton("Go")
        view_row.addWidget(self._lat_edit)
        view_row.addWidget(self._lon_edit)
        view_row.addWidget(self._zoom_spin)
        view_row.addWidget(self._view_btn)
        layout.addLayout(view_row, row, 0, 1, 2)

        row += 1
        layout.addWidget(QtWidgets.QLabel("Layers"), row, 0)
        self._layer_list = QtWidgets.QListWidget()
        self._layer_list.setFixedHeight(80)
        layout.addWidget(self._layer_list, row, 1)

        row += 1
        layout.addWidget(QtWidgets.QLabel("Link"), row, 0)
        self._link_edit = QtWidgets.QLineEdit()
        self._link_edit.setReadOnly(True)
        layout.addWidget(self._link_edit, row, 1)

        row += 1
        self._notices = QtWidgets.QPlainTextEdit()
        self._notices.setReadOnly(True)
        self._notices.setPlaceholderText("Notices will appear here.")
        self._notices.setFixedHeight(110)
        layout.addWidget(self._notices, row, 0, 1, 2)

        outer.addWidget(side)

        self._preview = PreviewLabel("Loading map...")
        self._preview.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self._preview.setFrameShape(QtWidgets.QFrame.Shape.StyledPanel)
        self._preview.setMinimumSize(preview_size, preview_size // 2)
        self._preview.setScaledContents(True)
        outer.addWidget(self._preview, 1)

        # Events
        self._win.destroyed.connect(self._on_destroyed)
        self._site_combo.currentIndexChanged.connect(self._on_site_chosen)
        self._reset_btn.clicked.connect(lambda: self._emit(UiEvent.simple(EventKind.RESET_CLICKED)))
        self._back_btn.clicked.connect(lambda: self._emit(UiEvent.simple(EventKind.BACK_CLICKED)))
        self._forward_btn.clicked.connect(lambda: self._emit(UiEvent.simple(EventKind.FORWARD_CLICKED)))
        self._slider.valueChanged.connect(self._on_slider_changed)
        self._slider.sliderReleased.connect(self._on_slider_released)
        self._min_edit.editingFinished.connect(self._on_legend_edited)
        self._max_edit.editingFinished.connect(self._on_legend_edited)
        self._inspector_close.clicked.connect(lambda: self._emit(UiEvent.simple(EventKind.INSPECTOR_CLOSED)))
        self._view_btn.clicked.connect(self._on_view_requested)
        self._preview.clicked.connect(self._on_preview_clicked)

        QtWidgets.QApplication.setStyle("Fusion")
        self._win.show()

    # ---- Public API ----
    def poll(self) -> bool:
        if self._closed:
            return False
        self._app.processEvents()
        return not self._closed

    def destroy(self) -> None:
        if not self._closed:
            self._closed = True
            self._win.close()

    def pop_event(self) -> Optional[UiEvent]:
        if self._events:
            return self._events.popleft()
        return None

    def render(self, view: ViewState) -> None:
        """Reflect the controller snapshot; unchanged snapshots are skipped."""
        key = (
            view.status,
            view.site_name,
            view.date_label,
            view.image_count_label,
            view.slider_max,
            view.slider_value,
            view.back_enabled,
            view.forward_enabled,
            view.loading,
            view.layer_version,
            view.legend,
            view.inspector,
            view.viewport,
            view.error,
        )
        if key == self._last_key:
            return
        self._last_key = key
        self._updating = True
        try:
            self._render_session(view)
            self._render_legend(view)
            self._render_inspector(view)
            self._render_viewport(view)
            self._layer_list.clear()
            for layer in reversed(view.layers):
                self._layer_list.addItem(layer.name)
        finally:
            self._updating = False

    def set_preview(self, image: Optional[Image.Image], region: Optional[GeoBoundingBox]) -> None:
        if image is None:
            self._preview.clear()
            self._preview.setText("No preview available.")
            self._preview_region = None
            return
        self._preview.setPixmap(QPixmap.fromImage(ImageQt(image)))
        self._preview.setText("")
        self._preview_region = region

    def add_notice(self, notice: Notice) -> None:
        self._notices.appendPlainText(f"[{notice.kind.value}] {notice.message}")

    def set_share_link(self, link: str) -> None:
        if self._link_edit.text() != link:
            self._link_edit.setText(link)

    # ---- Rendering ----
    def _render_session(self, view: ViewState) -> None:
        if view.error:
            status = view.error
        elif view.loading:
            status = f"{view.site_name}: {LOADING_TEXT}" if view.site_name else LOADING_TEXT
        elif view.site_name:
            status = view.site_name
        else:
            status = "Click a site marker or pick a site."
        self._status_label.setText(status)
        self._date_label.setText(view.date_label)
        self._count_label.setText(view.image_count_label)
        self._back_btn.setEnabled(view.back_enabled)
        self._forward_btn.setEnabled(view.forward_enabled)
        has_dates = bool(view.image_count_label)
        self._slider.setEnabled(has_dates and view.status == "displayed")
        self._slider.setRange(0, max(0, view.slider_max))
        self._slider.setValue(view.slider_value)
        self._reset_btn.setEnabled(view.site_name is not None)
        self._site_combo.setEnabled(view.site_name is None)
        if view.site_name is None:
            self._site_combo.setCurrentIndex(0)

    def _render_legend(self, view: ViewState) -> None:
        legend = view.legend
        visible = legend is not None
        for widget in (self._min_edit, self._max_edit, self._mid_label, self._colorbar):
            widget.setVisible(visible)
        if legend is None:
            return
        if not self._min_edit.hasFocus():
            self._min_edit.setText(legend.min_text)
        if not self._max_edit.hasFocus():
            self._max_edit.setText(legend.max_text)
        self._mid_label.setText(legend.mid_text)

    def _render_inspector(self, view: ViewState) -> None:
        inspector = view.inspector
        self._inspector_label.setText(inspector.text if inspector.visible else "")
        self._inspector_close.setVisible(inspector.visible)

    def _render_viewport(self, view: ViewState) -> None:
        viewport = view.viewport
        if viewport is None:
            return
        self._lat_edit.setText(f"{viewport.lat:.6f}")
        self._lon_edit.setText(f"{viewport.lon:.6f}")
        self._zoom_spin.setValue(viewport.zoom)

    # ---- Event handlers / internals ----
    def _emit(self, event: UiEvent) -> None:
        if self._updating:
            return
        self._events.append(event)

    def _on_destroyed(self, _obj=None) -> None:
        self._closed = True

    def _on_site_chosen(self, index: int) -> None:
        if index <= 0:
            return
        self._emit(UiEvent.site_chosen(self._site_combo.itemText(index)))

    def _on_slider_changed(self, value: int) -> None:
        if self._slider.isSliderDown():
            return
        self._emit(UiEvent.slider_moved(int(value)))

    def _on_slider_released(self) -> None:
        self._emit(UiEvent.slider_moved(int(self._slider.value())))

    def _on_legend_edited(self) -> None:
        self._emit(UiEvent.legend_range_edited(self._min_edit.text(), self._max_edit.text()))

    def _on_view_requested(self) -> None:
        try:
            lat = float(self._lat_edit.text())
            lon = float(self._lon_edit.text())
        except ValueError:
            self._status_label.setText("Latitude and longitude must be numbers.")
            return
        self._emit(UiEvent.viewport_idle(lon, lat, int(self._zoom_spin.value())))

    def _on_preview_clicked(self, x: float, y: float, width: int, height: int) -> None:
        if self._preview_region is None:
            return
        lon, lat = pixel_to_lon_lat(self._preview_region, width, height, x, y)
        self._emit(UiEvent.site_clicked(lon, lat))

    @staticmethod
    def _hline() -> QtWidgets.QFrame:
        f = QtWidgets.QFrame()
        f.setFrameShape(QtWidgets.QFrame.Shape.HLine)
        f.setFrameShadow(QtWidgets.QFrame.Shadow.Sunken)
        return f
