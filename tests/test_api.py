from __future__ import annotations

import hashlib
import threading
import unittest

from fastapi.testclient import TestClient

from pdf2png.main import app
from pdf2png.services.conversion_service import ConversionService
from pdf2png.services.pymupdf_rasterizer import PyMuPDFRasterizer
from pdf2png.services.rasterizer import Rasterizer

from pdf_fixtures import PNG_SIGNATURE, make_pdf


class _CountingRasterizer(PyMuPDFRasterizer):
    def __init__(self) -> None:
        super().__init__(scale=2.0)
        self.calls = 0

    def render_first_page(self, data, sandbox, cancel_event=None):
        self.calls += 1
        return super().render_first_page(data, sandbox, cancel_event)


class _StuckRasterizer(Rasterizer):
    name = "stuck"

    def __init__(self) -> None:
        super().__init__()
        self.released = threading.Event()

    def render_first_page(self, data, sandbox, cancel_event=None):
        cancel_event.wait(5)
        self.released.set()
        self.check_cancelled(cancel_event)
        return PNG_SIGNATURE


class ApiTestCase(unittest.TestCase):
    max_input_bytes = 10 * 1024 * 1024

    def setUp(self) -> None:
        self._original_service = app.state.conversion_service
        self.rasterizer = _CountingRasterizer()
        app.state.conversion_service = self.make_service()
        self.client = TestClient(app)
        self.pdf = make_pdf("Hello PDF!")

    def tearDown(self) -> None:
        app.state.conversion_service = self._original_service

    def make_service(self) -> ConversionService:
        return ConversionService(self.rasterizer, max_input_bytes=self.max_input_bytes, timeout_seconds=30)

    def post_multipart(self, data: bytes, correlation_id: str | None = None):
        headers = {"X-Correlation-Id": correlation_id} if correlation_id else {}
        return self.client.post("/convert", files={"pdf": ("test.pdf", data, "application/pdf")}, headers=headers)

    def post_raw(self, data: bytes, correlation_id: str | None = None, content_type: str = "application/pdf"):
        headers = {"Content-Type": content_type}
        if correlation_id:
            headers["X-Correlation-Id"] = correlation_id
        return self.client.post("/convert-raw", content=data, headers=headers)

    def assert_error(self, response, status_code: int, error: str) -> dict:
        self.assertEqual(response.status_code, status_code)
        body = response.json()
        self.assertEqual(body["error"], error)
        self.assertTrue(body["message"])
        self.assertTrue(body["correlationId"])
        self.assertIsInstance(body["processingTimeMs"], int)
        self.assertEqual(response.headers["X-Correlation-Id"], body["correlationId"])
        return body


class TestHealth(ApiTestCase):
    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["service"], "pdf-converter-service")
        self.assertEqual(body["backend"], "pymupdf")
        self.assertIn("timestamp", body)

    def test_deployment_probe_names_backend(self) -> None:
        body = self.client.get("/test").json()
        self.assertEqual(body["library"], "PyMuPDF")
        self.assertIn("pymupdf", body["message"])


class TestConvertEndpoints(ApiTestCase):
    def test_multipart_hello_pdf(self) -> None:
        response = self.post_multipart(self.pdf, "test-multipart")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "image/png")
        self.assertTrue(response.content.startswith(PNG_SIGNATURE))
        self.assertEqual(response.headers["X-Correlation-Id"], "test-multipart")
        self.assertEqual(int(response.headers["X-Original-Size"]), len(self.pdf))
        self.assertEqual(int(response.headers["X-Converted-Size"]), len(response.content))
        self.assertGreaterEqual(int(response.headers["X-Processing-Time-Ms"]), 0)

    def test_raw_hello_pdf(self) -> None:
        response = self.post_raw(self.pdf, "test-raw")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "image/png")
        self.assertEqual(response.headers["X-Correlation-Id"], "test-raw")
        self.assertEqual(int(response.headers["X-Original-Size"]), len(self.pdf))
        self.assertEqual(int(response.headers["X-Converted-Size"]), len(response.content))

    def test_both_entrypoints_produce_identical_output(self) -> None:
        multipart = self.post_multipart(self.pdf)
        raw = self.post_raw(self.pdf)
        self.assertEqual(
            hashlib.sha256(multipart.content).hexdigest(),
            hashlib.sha256(raw.content).hexdigest(),
        )

    def test_repeated_conversion_is_byte_identical(self) -> None:
        first = self.post_raw(self.pdf).content
        second = self.post_raw(self.pdf).content
        self.assertEqual(first, second)

    def test_missing_correlation_id_is_generated(self) -> None:
        response = self.post_raw(self.pdf)
        correlation_id = response.headers["X-Correlation-Id"]
        self.assertTrue(correlation_id)
        self.assertNotEqual(correlation_id, "unknown")
        self.assertNotEqual(self.post_raw(self.pdf).headers["X-Correlation-Id"], correlation_id)

    def test_charset_parameter_on_content_type_is_accepted(self) -> None:
        response = self.post_raw(self.pdf, content_type="application/pdf; charset=binary")
        self.assertEqual(response.status_code, 200)


class TestConvertErrors(ApiTestCase):
    def test_request_without_body_is_rejected(self) -> None:
        response = self.client.post("/convert", headers={"X-Correlation-Id": "missing"})
        body = self.assert_error(response, 400, "InvalidInput")
        self.assertEqual(body["correlationId"], "missing")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_multipart_without_pdf_field_is_rejected(self) -> None:
        response = self.client.post("/convert", files={"document": ("a.txt", b"x", "text/plain")})
        self.assert_error(response, 400, "InvalidInput")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_empty_raw_body_is_rejected(self) -> None:
        self.assert_error(self.post_raw(b""), 400, "InvalidInput")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_raw_body_with_wrong_content_type_is_rejected(self) -> None:
        response = self.post_raw(self.pdf, content_type="application/octet-stream")
        self.assert_error(response, 400, "InvalidInput")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_text_field_in_place_of_file_is_rejected(self) -> None:
        response = self.client.post("/convert", data={"pdf": "abc"}, headers={"X-Correlation-Id": "bad-field"})
        body = self.assert_error(response, 400, "InvalidInput")
        self.assertEqual(body["correlationId"], "bad-field")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_multipart_without_boundary_is_rejected(self) -> None:
        response = self.client.post(
            "/convert",
            content=b"garbage",
            headers={"Content-Type": "multipart/form-data", "X-Correlation-Id": "no-boundary"},
        )
        body = self.assert_error(response, 400, "InvalidInput")
        self.assertEqual(body["correlationId"], "no-boundary")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_invalid_content_fails_cleanly(self) -> None:
        response = self.post_raw(b"not-a-pdf", "test-invalid")
        self.assertIn(response.status_code, (400, 500))
        body = response.json()
        self.assertIn(body["error"], {"MalformedDocument", "NoPagesRendered", "RenderFailure"})
        self.assertEqual(body["correlationId"], "test-invalid")
        self.assertNotIn("Traceback", body["message"])

    def test_service_keeps_serving_after_failure(self) -> None:
        self.post_raw(b"not-a-pdf")
        self.assertEqual(self.post_raw(self.pdf).status_code, 200)


class TestUploadLimit(ApiTestCase):
    max_input_bytes = 1024

    def test_oversize_raw_body_is_rejected_before_backend(self) -> None:
        response = self.post_raw(b"%PDF" + b"0" * 4096)
        self.assert_error(response, 413, "InvalidInput")
        self.assertEqual(self.rasterizer.calls, 0)

    def test_oversize_upload_is_rejected_before_backend(self) -> None:
        response = self.post_multipart(b"%PDF" + b"0" * 4096)
        self.assert_error(response, 413, "InvalidInput")
        self.assertEqual(self.rasterizer.calls, 0)


class TestTimeout(ApiTestCase):
    def make_service(self) -> ConversionService:
        self.stuck = _StuckRasterizer()
        return ConversionService(self.stuck, timeout_seconds=0.2)

    def test_slow_conversion_reports_timeout(self) -> None:
        response = self.post_raw(self.pdf, "test-timeout")
        body = self.assert_error(response, 500, "Timeout")
        self.assertEqual(body["correlationId"], "test-timeout")
        self.assertTrue(self.stuck.released.wait(5))
