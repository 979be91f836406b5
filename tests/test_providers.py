"""
Provider clients against httpx.MockTransport; no network.
"""

import json

import httpx
import pytest

from calcgrade.services.exceptions import MalformedResponseError, ProviderError, StorageError
from calcgrade.services.llm_client import DeepseekClient, parse_json_content
from calcgrade.services.ocr_client import MathpixClient, normalize_mime_type
from calcgrade.services.storage_client import StorageClient


def mathpix(handler):
    return MathpixClient("app-id", "app-key", transport=httpx.MockTransport(handler))


def deepseek(handler):
    return DeepseekClient("sk-test", base_url="https://llm.test/v1", transport=httpx.MockTransport(handler))


class TestMathpixClient:
    def test_recognize_success(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"text": "\\int x dx", "latex_normal": "\\int x\\,dx", "confidence": 0.87}
            )

        response = mathpix(handler).recognize(b"fake-bytes", "image/jpeg")

        assert response.text == "\\int x dx"
        assert response.latex == "\\int x\\,dx"
        assert response.confidence == pytest.approx(0.87)
        assert seen["headers"]["app_id"] == "app-id"
        assert seen["headers"]["app_key"] == "app-key"
        assert seen["body"]["src"].startswith("data:image/jpeg;base64,")
        assert seen["body"]["formats"] == ["text", "latex_normal"]

    def test_empty_text_is_not_an_error(self):
        response = mathpix(lambda r: httpx.Response(200, json={"text": ""})).recognize(b"x", "image/png")
        assert response.text == ""

    def test_non_200_raises_provider_error(self):
        with pytest.raises(ProviderError, match="500"):
            mathpix(lambda r: httpx.Response(500, text="internal")).recognize(b"x", "image/png")

    def test_error_field_raises_provider_error(self):
        with pytest.raises(ProviderError, match="image too small"):
            mathpix(lambda r: httpx.Response(200, json={"error": "image too small"})).recognize(b"x")

    def test_transport_error_raises_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError, match="request failed"):
            mathpix(handler).recognize(b"x", "image/png")

    def test_missing_credentials(self):
        client = MathpixClient("", "")
        assert client.configured is False
        with pytest.raises(ProviderError):
            client.recognize(b"x", "image/png")

    @pytest.mark.parametrize(
        "given, expected",
        [
            (None, "image/png"),
            ("application/pdf", "application/pdf"),
            ("image/jpg", "image/jpeg"),
            ("image/webp", "image/webp"),
            ("text/plain", "image/png"),
        ],
    )
    def test_normalize_mime_type(self, given, expected):
        assert normalize_mime_type(given) == expected


class TestDeepseekClient:
    def test_chat_returns_first_choice(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"score": 70}'}}]})

        content = deepseek(handler).chat([{"role": "user", "content": "批改"}], max_tokens=100)

        assert content == '{"score": 70}'
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "deepseek-chat"
        assert seen["body"]["max_tokens"] == 100

    def test_rate_limit_raises_provider_error(self):
        with pytest.raises(ProviderError, match="429"):
            deepseek(lambda r: httpx.Response(429, text="slow down")).chat([])

    def test_missing_choices_raises_provider_error(self):
        with pytest.raises(ProviderError):
            deepseek(lambda r: httpx.Response(200, json={"choices": []})).chat([])

    def test_missing_api_key(self):
        with pytest.raises(ProviderError):
            DeepseekClient("").chat([{"role": "user", "content": "hi"}])


class TestParseJsonContent:
    def test_plain_object(self):
        assert parse_json_content('{"score": 88}') == {"score": 88}

    def test_fenced_object(self):
        content = '```json\n{"score": 60, "feedback": "一般"}\n```'
        assert parse_json_content(content)["feedback"] == "一般"

    def test_prose_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            parse_json_content("分数是 60 分")

    def test_array_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            parse_json_content("[1, 2]")


class FakeBucket:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploaded = {}

    def upload(self, path, file, file_options):
        if self.fail:
            raise RuntimeError("bucket not found")
        self.uploaded[path] = (file, file_options)

    def download(self, path):
        return self.uploaded.get(path, (b"", None))[0]

    def remove(self, paths):
        for path in paths:
            self.uploaded.pop(path, None)


class FakeSupabase:
    def __init__(self, bucket):
        self._bucket = bucket
        self.storage = self

    def from_(self, name):
        return self._bucket


class TestStorageClient:
    def test_upload_and_download(self):
        bucket = FakeBucket()
        storage = StorageClient(bucket="assignments", client=FakeSupabase(bucket))

        storage.upload("7/abc.png", b"png-bytes", "image/png")

        assert bucket.uploaded["7/abc.png"][1]["content-type"] == "image/png"
        assert storage.download("7/abc.png") == b"png-bytes"

    def test_upload_failure_wraps_as_storage_error(self):
        storage = StorageClient(client=FakeSupabase(FakeBucket(fail=True)))
        with pytest.raises(StorageError, match="bucket not found"):
            storage.upload("7/abc.png", b"x", "image/png")

    def test_empty_download_is_an_error(self):
        storage = StorageClient(client=FakeSupabase(FakeBucket()))
        with pytest.raises(StorageError):
            storage.download("missing.png")

    def test_storage_error_is_a_provider_error(self):
        assert issubclass(StorageError, ProviderError)
