"""Application icon helpers."""
from __future__ import annotations


def create_icon(size: int = 64):  # pragma: no cover - requires PyQt at runtime
    """Create the window :class:`~PyQt5.QtGui.QIcon`: a device tile with a link mark."""

    try:
        from PyQt5.QtCore import QRectF, Qt
        from PyQt5.QtGui import QBrush, QColor, QIcon, QPainter, QPen, QPixmap
    except ImportError as exc:  # pragma: no cover - depends on environment
        raise RuntimeError("PyQt5 is required to generate the application icon") from exc

    pixmap = QPixmap(size, size)
    pixmap.fill(Qt.transparent)

    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing)
    painter.setBrush(QBrush(QColor("#0078D4")))
    painter.setPen(Qt.NoPen)
    painter.drawRoundedRect(QRectF(4, 4, size - 8, size - 8), size / 6, size / 6)

    painter.setPen(QPen(Qt.white, max(2, size // 16)))
    painter.setBrush(Qt.NoBrush)
    third = size / 3
    for radius in (third / 2, third):
        painter.drawArc(QRectF(size / 2 - radius, size / 2 - radius, radius * 2, radius * 2), 45 * 16, 90 * 16)
    painter.setBrush(QBrush(Qt.white))
    painter.drawEllipse(QRectF(size / 2 - 3, size / 2 - 3, 6, 6))
    painter.end()

    return QIcon(pixmap)


__all__ = ["create_icon"]
