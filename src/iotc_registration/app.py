"""PyQt5 user interface for device registration."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from PyQt5.QtCore import QObject, QThread, Qt, pyqtSignal
from PyQt5.QtGui import QImage, QPixmap
from PyQt5.QtWidgets import (
    QApplication,
    QFileDialog,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from .client import ProvisioningClientFactory, shutdown_quietly
from .config import AppConfig, CameraConfig, StyleConfig
from .credentials import CredentialDecoder
from .icon import create_icon
from .lookup import NumericCodeLookup
from .qr import QRCodeManager
from .source import CredentialSource, Numeric, Scanned
from .state import Action, ConfigStore, UserIdentity
from .workflow import VerificationWorkflow, WorkflowState

logger = logging.getLogger(__name__)

TITLE = "GETTING STARTED"
INSTRUCTIONS = "How would you like to verify your device?"
NUMERIC_INSTRUCTIONS = "Please enter your verification code."
FOOTER_TEXT = (
    "Depending on the preferred user flow, the backend provisioning information "
    "can either be mapped to a code or stored in a QR code."
)
QR_FOOTER_TEXT = (
    "After scanning the QR code, the IoT Central provisioning credentials will be "
    "stored in the app and used to connect the device."
)


class VerifyWorker(QObject):  # pragma: no cover - requires Qt event loop
    """Runs the in-flight verification attempt off the UI thread."""

    finished = pyqtSignal(object)

    def __init__(self, workflow: VerificationWorkflow):
        super().__init__()
        self._workflow = workflow

    def run(self) -> None:
        try:
            state = asyncio.run(self._workflow.complete())
        except Exception:
            logger.exception("Verification worker crashed")
            state = self._workflow.state
        self.finished.emit(state)


class StoreBridge(QObject):  # pragma: no cover - requires Qt event loop
    """Re-emits store publishes as a Qt signal so listeners run on the UI thread."""

    published = pyqtSignal(object)

    def __init__(self, store: ConfigStore):
        super().__init__()
        self._unsubscribe = store.subscribe(self._on_action)

    def _on_action(self, action: Action) -> None:
        self.published.emit(action.payload)

    def close(self) -> None:
        self._unsubscribe()


class SignInScreen(QWidget):  # pragma: no cover - requires Qt event loop
    signed_in = pyqtSignal(object)

    def __init__(self, style: StyleConfig):
        super().__init__()
        self._style = style
        self._setup_ui()

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setAlignment(Qt.AlignCenter)

        panel = QWidget()
        panel.setMaximumWidth(420)
        panel.setObjectName("CentralPanel")
        panel_layout = QVBoxLayout(panel)
        panel_layout.setSpacing(15)

        title = QLabel("Sign in")
        title.setObjectName("HeaderLabel")
        title.setAlignment(Qt.AlignCenter)

        info = QLabel("Verification codes are issued for your account.")
        info.setWordWrap(True)
        info.setAlignment(Qt.AlignCenter)
        info.setObjectName("SubtleLabel")

        self._user_input = QLineEdit()
        self._user_input.setPlaceholderText("Account id")
        self._user_input.setMinimumHeight(40)

        self._name_input = QLineEdit()
        self._name_input.setPlaceholderText("Display name (optional)")
        self._name_input.setMinimumHeight(40)

        sign_in_btn = QPushButton("SIGN IN")
        sign_in_btn.setObjectName("AccentButton")
        sign_in_btn.setMinimumHeight(45)

        panel_layout.addWidget(title)
        panel_layout.addWidget(info)
        panel_layout.addWidget(self._user_input)
        panel_layout.addWidget(self._name_input)
        panel_layout.addWidget(sign_in_btn)
        layout.addWidget(panel)

        sign_in_btn.clicked.connect(self._submit)
        self._user_input.returnPressed.connect(self._submit)

    def _submit(self) -> None:
        user_id = self._user_input.text().strip()
        if not user_id:
            QMessageBox.warning(self, "Sign in", "Enter your account id.")
            return
        name = self._name_input.text().strip() or None
        self.signed_in.emit(UserIdentity(user_id, name))


class CameraWorker(QObject):  # pragma: no cover - requires Qt event loop
    """Streams camera frames until :class:`QRCodeManager` finds a code in one."""

    frame_captured = pyqtSignal(object)
    decoded = pyqtSignal(bytes)
    status = pyqtSignal(str)
    finished = pyqtSignal()

    def __init__(self, config: AppConfig, camera_config: CameraConfig, qr: QRCodeManager):
        super().__init__()
        self._config = config
        self._camera_config = camera_config
        self._qr = qr
        self._running = False

    def stop(self) -> None:
        self._running = False

    def run(self) -> None:
        try:
            import cv2  # type: ignore
        except ImportError:
            self.status.emit("Camera dependencies not installed")
            self.finished.emit()
            return

        capture = self._open_capture(cv2)
        if capture is None:
            self.status.emit("Unable to access camera")
            self.finished.emit()
            return

        self._running = True
        frame_skip = max(1, self._config.camera_frame_skip)
        self.status.emit("Move closer to scan")

        try:
            frame_counter = 0
            while self._running:
                success, frame = capture.read()
                if not success or frame is None:
                    self.status.emit("Camera feed unavailable")
                    break

                frame = self._fit_frame(cv2, frame)
                self.frame_captured.emit(frame)

                frame_counter += 1
                if frame_counter % frame_skip == 0:
                    payload = self._qr.decode_frame(frame)
                    if payload:
                        self.decoded.emit(payload)
                        break
        finally:
            self._running = False
            capture.release()
            self.finished.emit()

    def _open_capture(self, cv2):
        camera = self._camera_config
        for backend in camera.get_backends() or [cv2.CAP_ANY]:
            for index in camera.get_indices():
                capture = cv2.VideoCapture(index, backend)
                if capture.isOpened():
                    capture.set(cv2.CAP_PROP_FRAME_WIDTH, camera.width)
                    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, camera.height)
                    return capture
                capture.release()
        return None

    def _fit_frame(self, cv2, frame):
        height, width = frame.shape[:2]
        scale = self._config.max_frame_size / float(max(height, width))
        if scale >= 1:
            return frame
        return cv2.resize(frame, (int(width * scale), int(height * scale)))


class RegistrationScreen(QWidget):  # pragma: no cover - requires Qt event loop
    """One page per workflow state; the workflow decides which is shown."""

    def __init__(
        self,
        workflow: VerificationWorkflow,
        config: AppConfig,
        camera_config: CameraConfig,
        qr: QRCodeManager,
    ):
        super().__init__()
        self._workflow = workflow
        self._config = config
        self._camera_config = camera_config
        self._qr = qr

        self._verify_thread: QThread | None = None
        self._verify_worker: VerifyWorker | None = None
        self._camera_thread: QThread | None = None
        self._camera_worker: CameraWorker | None = None

        self._setup_ui()
        self.refresh()

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        self._pages = QStackedWidget()
        self._choose_page = self._create_choose_page()
        self._numeric_page = self._create_numeric_page()
        self._scan_page = self._create_scan_page()
        self._loading_page = self._create_loading_page()
        self._idle_page = QWidget()
        for page in (
            self._choose_page,
            self._numeric_page,
            self._scan_page,
            self._loading_page,
            self._idle_page,
        ):
            self._pages.addWidget(page)
        layout.addWidget(self._pages)

    def _simulated_block(self, page_layout: QVBoxLayout) -> None:
        page_layout.addWidget(QLabel("Don't have a code?"), alignment=Qt.AlignCenter)
        button = QPushButton("Use simulated code")
        button.clicked.connect(self._use_simulated)
        page_layout.addWidget(button, alignment=Qt.AlignCenter)

    def _footer(self, page_layout: QVBoxLayout, text: str) -> None:
        footer = QLabel(text)
        footer.setWordWrap(True)
        footer.setObjectName("SubtleLabel")
        page_layout.addWidget(footer)

    def _back_button(self, page_layout: QVBoxLayout) -> None:
        button = QPushButton("←")
        button.setObjectName("BackButton")
        button.clicked.connect(self.handle_back)
        page_layout.addWidget(button, alignment=Qt.AlignLeft)

    def _create_choose_page(self) -> QWidget:
        page = QWidget()
        page_layout = QVBoxLayout(page)

        title = QLabel(TITLE)
        title.setObjectName("HeaderLabel")
        title.setAlignment(Qt.AlignCenter)
        instructions = QLabel(INSTRUCTIONS)
        instructions.setAlignment(Qt.AlignCenter)

        code_btn = QPushButton("ENTER A CODE")
        code_btn.clicked.connect(lambda: self._after(self._workflow.choose_numeric()))
        scan_btn = QPushButton("SCAN A CODE")
        scan_btn.setObjectName("AccentButton")
        scan_btn.clicked.connect(lambda: self._after(self._workflow.choose_scan()))

        page_layout.addWidget(title)
        page_layout.addWidget(instructions)
        page_layout.addWidget(code_btn, alignment=Qt.AlignCenter)
        page_layout.addWidget(scan_btn, alignment=Qt.AlignCenter)
        self._simulated_block(page_layout)
        self._footer(page_layout, FOOTER_TEXT)
        return page

    def _create_numeric_page(self) -> QWidget:
        page = QWidget()
        page_layout = QVBoxLayout(page)
        self._back_button(page_layout)

        page_layout.addWidget(QLabel(NUMERIC_INSTRUCTIONS), alignment=Qt.AlignCenter)
        self._code_input = QLineEdit()
        self._code_input.setPlaceholderText("Enter code")
        self._code_input.returnPressed.connect(self._submit_code)
        verify_btn = QPushButton("VERIFY")
        verify_btn.setObjectName("AccentButton")
        verify_btn.clicked.connect(self._submit_code)

        page_layout.addWidget(self._code_input)
        page_layout.addWidget(verify_btn, alignment=Qt.AlignCenter)
        self._simulated_block(page_layout)
        self._footer(page_layout, FOOTER_TEXT)
        return page

    def _create_scan_page(self) -> QWidget:
        page = QWidget()
        page_layout = QVBoxLayout(page)
        self._back_button(page_layout)

        self._camera_display = QLabel("Camera preview will appear here")
        self._camera_display.setAlignment(Qt.AlignCenter)
        self._camera_display.setMinimumSize(320, 240)
        self._camera_display.setObjectName("CameraLabel")
        self._camera_status = QLabel("")
        self._camera_status.setAlignment(Qt.AlignCenter)

        load_btn = QPushButton("Load QR image…")
        load_btn.clicked.connect(self._load_qr_file)

        page_layout.addWidget(self._camera_display, stretch=1)
        page_layout.addWidget(self._camera_status)
        page_layout.addWidget(load_btn, alignment=Qt.AlignCenter)
        self._simulated_block(page_layout)
        self._footer(page_layout, QR_FOOTER_TEXT)
        return page

    def _create_loading_page(self) -> QWidget:
        page = QWidget()
        page_layout = QVBoxLayout(page)
        page_layout.setAlignment(Qt.AlignCenter)
        label = QLabel("Connecting to Azure IoT Central ...")
        label.setObjectName("HeaderLabel")
        page_layout.addWidget(label)
        return page

    def refresh(self) -> None:
        state = self._workflow.state
        if state is not WorkflowState.SCANNING:
            self._stop_camera()

        pages = {
            WorkflowState.CHOOSING_METHOD: self._choose_page,
            WorkflowState.ENTERING_CODE: self._numeric_page,
            WorkflowState.SCANNING: self._scan_page,
            WorkflowState.CONNECTING: self._loading_page,
            WorkflowState.ERROR: self._loading_page,
            WorkflowState.IDLE: self._idle_page,
        }
        self._pages.setCurrentWidget(pages[state])

        if state is WorkflowState.SCANNING:
            self._start_camera()
        elif state is WorkflowState.ERROR:
            QMessageBox.critical(self, "Error", self._workflow.error_message or "")
            self._workflow.dismiss_error()
            self.refresh()

    def _after(self, changed: bool) -> None:
        if changed:
            self.refresh()

    def handle_back(self) -> bool:
        handled = self._workflow.back()
        if handled:
            self._code_input.clear()
            self.refresh()
        return handled

    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        if event.key() in (Qt.Key_Escape, Qt.Key_Back) and self.handle_back():
            event.accept()
            return
        super().keyPressEvent(event)

    def _use_simulated(self) -> None:
        self._after(self._workflow.choose_simulated())

    def _submit_code(self) -> None:
        self._start_verification(Numeric(self._code_input.text()))

    def _on_scanned(self, payload: bytes | str) -> None:
        self._start_verification(Scanned(payload))

    def _start_verification(self, method) -> None:
        if not self._workflow.begin(method):
            return
        self.refresh()

        thread = QThread()
        worker = VerifyWorker(self._workflow)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(self._on_verify_finished)
        thread.finished.connect(thread.deleteLater)
        self._verify_thread = thread
        self._verify_worker = worker
        thread.start()

    def _on_verify_finished(self, _state: object) -> None:
        self._stop_verification()
        self.refresh()

    def _stop_verification(self) -> None:
        if self._verify_thread and self._verify_thread.isRunning():
            self._verify_thread.quit()
            self._verify_thread.wait()
        self._verify_thread = None
        self._verify_worker = None

    def _load_qr_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Open QR Image", "", "Images (*.png *.jpg *.jpeg *.bmp)"
        )
        if not path:
            return
        data = self._qr.read_from_file(path)
        if not data:
            QMessageBox.critical(self, "Error", "Failed to read QR from image")
            return
        self._on_scanned(data)

    def _start_camera(self) -> None:
        if self._camera_thread:
            return

        worker = CameraWorker(self._config, self._camera_config, self._qr)
        thread = QThread()
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.frame_captured.connect(self._on_camera_frame)
        worker.decoded.connect(self._on_camera_decoded)
        worker.status.connect(self._camera_status.setText)
        worker.finished.connect(self._on_camera_finished)
        thread.finished.connect(thread.deleteLater)

        self._camera_thread = thread
        self._camera_worker = worker
        thread.start()

    def _stop_camera(self) -> None:
        if self._camera_worker:
            self._camera_worker.stop()
        if self._camera_thread and self._camera_thread.isRunning():
            self._camera_thread.quit()
            self._camera_thread.wait(1500)
        self._camera_thread = None
        self._camera_worker = None
        self._camera_display.clear()
        self._camera_display.setText("Camera preview will appear here")

    def _on_camera_frame(self, frame) -> None:
        rgb = frame[:, :, ::-1].copy()
        height, width, channel = rgb.shape
        image = QImage(rgb.data, width, height, channel * width, QImage.Format_RGB888)
        pixmap = QPixmap.fromImage(image.copy())
        target = self._camera_display.size()
        if target.width() and target.height():
            pixmap = pixmap.scaled(target, Qt.KeepAspectRatio, Qt.SmoothTransformation)
        self._camera_display.setPixmap(pixmap)

    def _on_camera_decoded(self, payload: bytes) -> None:
        self._stop_camera()
        self._on_scanned(payload)

    def _on_camera_finished(self) -> None:
        if self._camera_thread and self._camera_thread.isRunning():
            self._camera_thread.quit()
            self._camera_thread.wait(1500)
        self._camera_thread = None
        self._camera_worker = None

    def shutdown(self) -> None:
        self._stop_camera()
        self._stop_verification()


class RegistrationApp(QMainWindow):  # pragma: no cover - requires Qt event loop
    def __init__(self, config: Optional[AppConfig] = None) -> None:
        super().__init__()

        self._config = config or AppConfig.from_env()
        self._camera_config = CameraConfig()
        self._style = StyleConfig()
        self._store = ConfigStore()
        self._bridge = StoreBridge(self._store)
        self._bridge.published.connect(self._on_published)
        self._qr = QRCodeManager(self._config)
        self._screen: RegistrationScreen | None = None

        self._setup_ui()

    def _setup_ui(self) -> None:
        self.setWindowTitle(f"{self._config.app_name} v{self._config.app_version}")
        self.setGeometry(100, 100, 480, 760)
        try:
            self.setWindowIcon(create_icon())
        except RuntimeError:
            pass
        self._apply_stylesheet()

        self._stack = QStackedWidget()
        self._sign_in = SignInScreen(self._style)
        self._sign_in.signed_in.connect(self._on_signed_in)
        self._stack.addWidget(self._sign_in)

        self._status = QLabel()
        self._status.setAlignment(Qt.AlignCenter)
        self._status.setObjectName("HeaderLabel")
        self._stack.addWidget(self._status)

        self.setCentralWidget(self._stack)
        self.show()

    def _apply_stylesheet(self) -> None:
        style = self._style
        self.setStyleSheet(
            f"""
            QMainWindow {{ background: {style.bg_primary}; }}
            QWidget {{ color: {style.fg_primary}; font-family: {style.font_family}; font-size: {style.font_size}px; }}
            QLineEdit {{ background: {style.bg_secondary}; border: 1px solid {style.border}; border-radius: 4px; padding: 10px; }}
            QLineEdit:focus {{ border: 1px solid {style.accent_primary}; }}
            QPushButton {{ background: {style.bg_primary}; color: {style.accent_primary}; border: 1px solid {style.accent_primary}; padding: 10px 18px; min-width: 200px; border-radius: 4px; font-weight: bold; }}
            QPushButton#AccentButton {{ background: {style.accent_primary}; color: {style.fg_inverse}; }}
            QPushButton#BackButton {{ border: none; min-width: 0; font-size: 22px; }}
            QPushButton:hover {{ background: {style.accent_secondary}; color: {style.fg_inverse}; }}
            #HeaderLabel {{ font-size: 22px; font-weight: bold; }}
            #SubtleLabel {{ color: #605E5C; font-size: 12px; }}
            #CentralPanel {{ background: {style.bg_secondary}; border-radius: 8px; padding: 20px; }}
            #CameraLabel {{ border: 2px dashed {style.border}; background: #000000; color: {style.fg_inverse}; }}
            """
        )

    def _on_signed_in(self, user: UserIdentity) -> None:
        workflow = VerificationWorkflow(
            self._store,
            user,
            CredentialSource(NumericCodeLookup(self._config), self._qr),
            CredentialDecoder(self._config),
            ProvisioningClientFactory(self._config),
            self._config,
        )
        self._screen = RegistrationScreen(workflow, self._config, self._camera_config, self._qr)
        self._stack.addWidget(self._screen)
        self._stack.setCurrentWidget(self._screen)
        self._screen.setFocus()

    def _on_published(self, client: object) -> None:
        if client is None:
            self._status.setText("Simulated connection.\nData will not be sent to IoT Central.")
        else:
            self._status.setText(f"Connected as {client.device_id}\n{client.hub}")
        if self._screen:
            self._screen.shutdown()
        self._stack.setCurrentWidget(self._status)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        if self._screen:
            self._screen.shutdown()
        self._bridge.close()
        client = self._store.client
        if client is not None:
            asyncio.run(shutdown_quietly(client))
        event.accept()


def run() -> int:  # pragma: no cover - requires Qt event loop
    config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication.instance() or QApplication([])
    app.setApplicationName("IoT Central Registration")
    window = RegistrationApp(config)
    return app.exec_()


__all__ = ["run", "RegistrationApp", "RegistrationScreen"]
