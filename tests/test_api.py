import base64
import io
import json
import re
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from conftest import make_image, multipart_parts
from videoproxy.main import create_app

VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + bytes(range(256)) * 4
OPERATION = "models/veo-3.1-generate-preview/operations/op42"
GEMINI_FILE = "https://gemini.test/v1beta/files/vid:download"


@pytest.fixture
def client(settings, http_client):
    with TestClient(create_app(settings, http_client=http_client)) as c:
        yield c


def app_client(settings, http_client, **overrides):
    return TestClient(create_app(settings.model_copy(update=overrides), http_client=http_client))


def sora_job(fake, job_id="job_123", statuses=("processing", "processing", "completed")):
    fake.on("POST", "/v1/videos", httpx.Response(200, json={"id": job_id, "status": "queued"}))
    fake.on("GET", f"/v1/videos/{job_id}",
            *[httpx.Response(200, json={"id": job_id, "status": s}) for s in statuses])
    fake.on("GET", f"/v1/videos/{job_id}/content",
            httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/mp4"}))


def veo_job(fake):
    fake.on("POST", "/v1beta/models/veo-3.1-generate-preview:predictLongRunning",
            httpx.Response(200, json={"name": OPERATION}))
    fake.on("GET", f"/v1beta/{OPERATION}", httpx.Response(200, json={
        "name": OPERATION,
        "done": True,
        "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": GEMINI_FILE}}]}},
    }))
    fake.on("GET", "/v1beta/files/vid:download",
            httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/mp4"}))


def test_generate_end_to_end_and_history(client, fake, settings):
    sora_job(fake)

    resp = client.post("/api/generate", data={
        "prompt": "a cat on a skateboard", "provider": "openai", "apiKey": "sk-test",
    })

    assert resp.status_code == 200, resp.text
    entry = resp.json()
    assert entry["videoId"] == "job_123"
    assert entry["provider"] == "openai"
    assert entry["model"] == "sora-2"
    assert entry["size"] == len(VIDEO_BYTES)
    assert entry["referenceUrl"] is None
    assert re.fullmatch(r"/videos/job_123-\d+\.mp4", entry["url"])
    assert len(fake.sent("GET", "/v1/videos/job_123")) == 3

    local = Path(settings.VIDEOS_DIR) / entry["url"].rsplit("/", 1)[1]
    assert local.read_bytes() == VIDEO_BYTES
    assert client.get(entry["url"]).content == VIDEO_BYTES

    history = client.get("/api/videos").json()["videos"]
    assert [v["url"] for v in history] == [entry["url"]]
    assert history[0]["prompt"] == "a cat on a skateboard"


def test_provider_a_reference_is_resized(client, fake, settings):
    sora_job(fake)
    original = make_image(800, 800)

    resp = client.post(
        "/api/generate",
        data={"prompt": "a cat", "apiKey": "sk-test", "size": "1280x720", "seconds": "8"},
        files={"input_reference": ("cat.png", original, "image/png")},
    )

    assert resp.status_code == 200, resp.text
    parts = multipart_parts(fake.sent("POST", "/v1/videos")[0])
    with Image.open(io.BytesIO(parts["input_reference"])) as img:
        assert img.size == (1280, 720)
    assert parts["size"] == b"1280x720"
    assert parts["seconds"] == b"8"

    reference_url = resp.json()["referenceUrl"]
    assert reference_url.startswith("/references/")
    assert client.get(reference_url).content == original
    assert list(Path(settings.UPLOADS_DIR).iterdir()) == []

    refs = client.get("/api/references").json()["references"]
    assert [r["url"] for r in refs] == [reference_url]
    assert refs[0]["size"] == len(original)


def test_provider_b_reference_sent_inline_unresized(client, fake):
    veo_job(fake)
    original = make_image(800, 800)

    resp = client.post(
        "/api/generate",
        data={"prompt": "a cat", "provider": "gemini", "apiKey": "g-key", "size": "1280x720"},
        files={"input_reference": ("cat.png", original, "image/png")},
    )

    assert resp.status_code == 200, resp.text
    body = json.loads(fake.requests[0].content)
    image = body["instances"][0]["image"]
    assert base64.b64decode(image["bytesBase64Encoded"]) == original
    assert body["parameters"]["aspectRatio"] == "16:9"

    entry = resp.json()
    assert entry["videoId"] == "op42"
    assert entry["provider"] == "gemini"
    assert entry["model"] == "veo-3.1-generate-preview"
    download = fake.sent("GET", "/v1beta/files/vid:download")[0]
    assert download.headers["x-goog-api-key"] == "g-key"


def test_provider_inferred_from_model(client, fake):
    veo_job(fake)

    resp = client.post("/api/generate", data={
        "prompt": "waves", "model": "veo-3.1-generate-preview", "apiKey": "g-key",
    })

    assert resp.status_code == 200, resp.text
    assert resp.json()["provider"] == "gemini"


def test_saved_reference_pointer(client, fake, settings):
    sora_job(fake)
    saved = Path(settings.REFERENCES_DIR) / "dog.png"
    saved.write_bytes(make_image(50, 50))

    resp = client.post("/api/generate", data={
        "prompt": "a dog", "apiKey": "sk-test", "reference": "/references/dog.png",
    })

    assert resp.status_code == 200, resp.text
    assert resp.json()["referenceUrl"] == "/references/dog.png"
    parts = multipart_parts(fake.sent("POST", "/v1/videos")[0])
    assert parts["input_reference"] == saved.read_bytes()
    assert saved.exists()


def test_missing_prompt_is_400(client, fake):
    resp = client.post("/api/generate", data={"prompt": "   ", "apiKey": "sk-test"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Prompt is required."}
    assert fake.requests == []


def test_missing_api_key_is_400(client):
    resp = client.post("/api/generate", data={"prompt": "hello"})

    assert resp.status_code == 400
    assert "OPENAI_API_KEY" in resp.json()["error"]


def test_api_key_falls_back_to_environment(settings, http_client, fake):
    sora_job(fake)
    with app_client(settings, http_client, OPENAI_API_KEY="env-key") as c:
        resp = c.post("/api/generate", data={"prompt": "hello"})

    assert resp.status_code == 200, resp.text
    assert fake.requests[0].headers["authorization"] == "Bearer env-key"


@pytest.mark.parametrize("field, value", [
    ("size", "wide"),
    ("seconds", "-4"),
    ("seconds", "soon"),
    ("provider", "runway"),
])
def test_malformed_fields_are_400(client, fake, field, value):
    resp = client.post("/api/generate", data={"prompt": "hi", "apiKey": "k", field: value})

    assert resp.status_code == 400
    assert fake.requests == []


def test_dangling_reference_is_404(client, fake):
    resp = client.post("/api/generate", data={
        "prompt": "hi", "apiKey": "k", "reference": "/references/nope.png",
    })

    assert resp.status_code == 404
    assert "not found" in resp.json()["error"]
    assert fake.requests == []


def test_non_image_upload_is_400(client, settings):
    resp = client.post(
        "/api/generate",
        data={"prompt": "hi", "apiKey": "k"},
        files={"input_reference": ("notes.txt", b"hello", "text/plain")},
    )

    assert resp.status_code == 400
    assert list(Path(settings.UPLOADS_DIR).iterdir()) == []


def test_provider_failure_is_502_and_cleans_uploads(client, fake, settings):
    fake.on("POST", "/v1/videos", httpx.Response(200, json={"id": "job_1"}))
    fake.on("GET", "/v1/videos/job_1",
            httpx.Response(200, json={"status": "failed", "error": {"message": "content policy"}}))

    resp = client.post(
        "/api/generate",
        data={"prompt": "hi", "apiKey": "k", "size": "1280x720"},
        files={"input_reference": ("cat.png", make_image(), "image/png")},
    )

    assert resp.status_code == 502
    assert resp.json() == {"error": "content policy"}
    assert list(Path(settings.UPLOADS_DIR).iterdir()) == []
    assert list(Path(settings.REFERENCES_DIR).iterdir()) == []
    assert client.get("/api/videos").json()["videos"] == []


def test_polling_timeout_is_504(settings, http_client, fake):
    sora_job(fake, statuses=("processing",))
    with app_client(settings, http_client, OPENAI_POLL_INTERVAL_MS=10, OPENAI_POLL_TIMEOUT_MS=100) as c:
        resp = c.post("/api/generate", data={"prompt": "hi", "apiKey": "k"})

    assert resp.status_code == 504
    assert "Timed out" in resp.json()["error"]


def test_history_cap_evicts_oldest_file(settings, http_client, fake):
    with app_client(settings, http_client, VIDEO_HISTORY_LIMIT=1) as c:
        sora_job(fake, "job_a", statuses=("completed",))
        first = c.post("/api/generate", data={"prompt": "one", "apiKey": "k"}).json()
        sora_job(fake, "job_b", statuses=("completed",))
        second = c.post("/api/generate", data={"prompt": "two", "apiKey": "k"}).json()

        history = c.get("/api/videos").json()["videos"]

    assert [v["videoId"] for v in history] == ["job_b"]
    assert not (Path(settings.VIDEOS_DIR) / first["url"].rsplit("/", 1)[1]).exists()
    assert (Path(settings.VIDEOS_DIR) / second["url"].rsplit("/", 1)[1]).exists()


def test_history_includes_files_without_metadata(client, settings):
    (Path(settings.VIDEOS_DIR) / "old-clip.mov").write_bytes(b"1234")

    videos = client.get("/api/videos").json()["videos"]

    assert videos == [{
        "videoId": "old-clip.mov",
        "prompt": "Local video (old-clip.mov)",
        "model": "sora-2",
        "provider": "openai",
        "createdAt": videos[0]["createdAt"],
        "url": "/videos/old-clip.mov",
        "contentType": "video/quicktime",
        "size": 4,
        "referenceUrl": None,
    }]


def test_remote_list_annotates_local_downloads(client, fake):
    sora_job(fake)
    generated = client.post("/api/generate", data={"prompt": "a cat", "apiKey": "sk"}).json()
    fake.on("GET", "/v1/videos", httpx.Response(200, json={"data": [
        {"id": "job_123", "status": "completed", "created_at": 1700000000, "prompt": "a cat"},
        {"id": "job_9", "status": "completed", "aspect_ratio": "16:9"},
    ]}))

    resp = client.post("/api/videos/remote/list", json={"apiKey": "sk"})

    assert resp.status_code == 200, resp.text
    videos = resp.json()["videos"]
    assert videos[0]["downloaded"] is True
    assert videos[0]["localUrl"] == generated["url"]
    assert videos[0]["createdAt"] == "2023-11-14T22:13:20Z"
    assert videos[1]["downloaded"] is False
    assert videos[1]["localUrl"] is None
    assert videos[1]["aspect_ratio"] == "16:9"
    assert "aspectRatio" not in videos[1]


def test_remote_list_requires_key(client):
    resp = client.post("/api/videos/remote/list", json={})

    assert resp.status_code == 400


def test_remote_download_records_entry(client, fake, settings):
    fake.on("GET", "/v1/videos/job_9", httpx.Response(200, json={
        "id": "job_9", "status": "completed", "model": "sora-2-pro",
        "metadata": {"prompt": "a remote dog"},
    }))
    fake.on("GET", "/v1/videos/job_9/content",
            httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/mp4"}))

    resp = client.post("/api/videos/remote/download", json={"videoId": "job_9", "apiKey": "sk"})

    assert resp.status_code == 200, resp.text
    video = resp.json()["video"]
    assert video["videoId"] == "job_9"
    assert video["prompt"] == "a remote dog"
    assert video["model"] == "sora-2-pro"
    assert (Path(settings.VIDEOS_DIR) / video["url"].rsplit("/", 1)[1]).read_bytes() == VIDEO_BYTES
    assert [v["videoId"] for v in client.get("/api/videos").json()["videos"]] == ["job_9"]


def test_remote_download_falls_back_to_placeholder_prompt(client, fake):
    fake.on("GET", "/v1/videos/job_7", httpx.Response(200, json={"id": "job_7"}))
    fake.on("GET", "/v1/videos/job_7/content", httpx.Response(200, content=b"bytes"))

    video = client.post("/api/videos/remote/download", json={"videoId": "job_7", "apiKey": "sk"}).json()["video"]

    assert video["prompt"] == "Remote video job_7"
    assert video["model"] == "sora-2"


def test_remote_download_requires_video_id(client):
    resp = client.post("/api/videos/remote/download", json={"apiKey": "sk"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "videoId is required."}


def test_references_listing(client, settings):
    (Path(settings.REFERENCES_DIR) / "a.png").write_bytes(b"12")

    refs = client.get("/api/references").json()["references"]

    assert refs[0]["fileName"] == "a.png"
    assert refs[0]["url"] == "/references/a.png"
    assert refs[0]["size"] == 2


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_openapi_documents_error_shape(client):
    schema = client.get("/openapi.json").json()

    responses = schema["paths"]["/api/generate"]["post"]["responses"]
    assert {"400", "502", "504"} <= set(responses)
    assert "ErrorResponse" in schema["components"]["schemas"]
