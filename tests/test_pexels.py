import pytest
import requests

from reel_worker.adapters.base import StockCandidate
from reel_worker.adapters.pexels_adapter import PEXELS_VIDEO_SEARCH_URL, PexelsStockSearch
from reel_worker.errors import StockSearchError

SEARCH_RESPONSE = {
    "videos": [
        {
            "id": 857251,
            "url": "https://www.pexels.com/video/sunrise-over-the-mountains-857251/",
            "duration": 24,
            "width": 1920,
            "height": 1080,
            "video_files": [
                {"quality": "sd", "width": 540, "height": 960, "link": "https://player.example/sd.mp4"},
                {"quality": "hd", "width": 1920, "height": 1080, "link": "https://player.example/land.mp4"},
                {"quality": "hd", "width": 1080, "height": 1920, "link": "https://player.example/hd.mp4"},
            ],
        },
        {
            "id": 1000,
            "url": "https://www.pexels.com/video/no-files-1000/",
            "duration": 12,
            "video_files": [],
        },
    ]
}


class FakeResponse:
    def __init__(self, payload=None, status=200, chunks=()):
        self.payload = payload
        self.status = status
        self.chunks = list(chunks)

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.payload is None:
            raise ValueError("no JSON")
        return self.payload

    def iter_content(self, chunk_size=1):
        return iter(self.chunks)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def test_search_builds_candidates_from_best_files():
    session = FakeSession(FakeResponse(SEARCH_RESPONSE))
    search = PexelsStockSearch("pexels-key", per_page=5, session=session)

    candidates = search.search(["sunrise", "mountain"], "portrait")

    url, kwargs = session.requests[0]
    assert url == PEXELS_VIDEO_SEARCH_URL
    assert kwargs["headers"] == {"Authorization": "pexels-key"}
    assert kwargs["params"]["query"] == "sunrise mountain"
    assert kwargs["params"]["orientation"] == "portrait"
    assert kwargs["params"]["per_page"] == 5

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.id == "857251"
    assert candidate.download_url == "https://player.example/hd.mp4"
    assert candidate.is_portrait
    assert candidate.duration == 24.0
    assert "sunrise" in candidate.tags and "mountains" in candidate.tags
    assert candidate.source == "pexels"


def test_http_error_becomes_stock_search_error():
    search = PexelsStockSearch("key", session=FakeSession(FakeResponse({}, status=500)))
    with pytest.raises(StockSearchError):
        search.search(["light"], "portrait")


def test_transport_error_becomes_stock_search_error():
    search = PexelsStockSearch("key", session=FakeSession(error=requests.ConnectionError("refused")))
    with pytest.raises(StockSearchError, match="refused"):
        search.search(["light"], "portrait")


def test_malformed_body_becomes_stock_search_error():
    search = PexelsStockSearch("key", session=FakeSession(FakeResponse(None)))
    with pytest.raises(StockSearchError):
        search.search(["light"], "portrait")


def test_download_streams_to_file(tmp_path):
    session = FakeSession(FakeResponse(chunks=[b"abc", b"", b"def"]))
    search = PexelsStockSearch("key", session=session)
    candidate = StockCandidate(id="1", download_url="https://player.example/hd.mp4", duration=20)

    path = search.download(candidate, str(tmp_path / "stock.mp4"))

    with open(path, "rb") as fh:
        assert fh.read() == b"abcdef"
    assert session.requests[0][1]["stream"] is True


def test_download_failure_becomes_stock_search_error(tmp_path):
    search = PexelsStockSearch("key", session=FakeSession(FakeResponse(status=404)))
    candidate = StockCandidate(id="1", download_url="https://player.example/gone.mp4", duration=20)
    with pytest.raises(StockSearchError):
        search.download(candidate, str(tmp_path / "stock.mp4"))


@pytest.mark.parametrize("body", [[], {"videos": "none"}, "rate limited"])
def test_unexpected_body_shape_becomes_stock_search_error(body):
    search = PexelsStockSearch("key", session=FakeSession(FakeResponse(body)))
    with pytest.raises(StockSearchError, match="Unexpected Pexels response"):
        search.search(["light"], "portrait")


def test_malformed_video_entries_are_skipped():
    broken = {
        "id": 7,
        "duration": "n/a",
        "video_files": [{"quality": "hd", "width": 1080, "height": 1920, "link": "https://player.example/7.mp4"}],
    }
    body = {"videos": [broken, "not-a-video", SEARCH_RESPONSE["videos"][0]]}
    search = PexelsStockSearch("key", session=FakeSession(FakeResponse(body)))

    candidates = search.search(["sunrise"], "portrait")

    assert [candidate.id for candidate in candidates] == ["857251"]


def test_missing_videos_key_means_no_candidates():
    search = PexelsStockSearch("key", session=FakeSession(FakeResponse({"page": 1})))
    assert search.search(["light"], "portrait") == []
