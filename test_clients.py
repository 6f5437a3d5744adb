#!/usr/bin/env python3
"""
Tests for the external-service clients with the SDKs mocked out.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from core.downloader import YtDlpDownloader
from core.speech_client import SpeechToTextClient, parse_segments
from core.text_client import TextCorrectionClient
from core.video_metadata import VideoMetadataFetcher


def test_parse_segments_accepts_objects_and_dicts():
    response = SimpleNamespace(segments=[
        SimpleNamespace(text=" hello", start=0.0, end=1.5, avg_logprob=-0.2, no_speech_prob=0.01),
        {"text": " world", "start": 1.5, "end": 2.0, "avg_logprob": -0.5, "no_speech_prob": 0.3},
    ])

    segments = parse_segments(response)

    assert [s.text for s in segments] == [" hello", " world"]
    assert segments[1].start_sec == 1.5
    assert segments[1].avg_logprob == -0.5


def test_parse_segments_without_segments():
    assert parse_segments(SimpleNamespace(text="only text")) == []


def test_speech_client_request(tmp_path):
    audio = tmp_path / "audio_dQw4w9WgXcQ_000_preprocessed.wav"
    audio.write_bytes(b"RIFF")
    sdk = MagicMock()
    sdk.audio.transcriptions.create = AsyncMock(return_value={"segments": [
        {"text": "hi", "start": 0.0, "end": 1.0},
    ]})
    client = SpeechToTextClient(api_key="k", client=sdk)

    segments = asyncio.run(client.transcribe(audio, language="ta", prompt="Cooking Show"))

    assert [s.text for s in segments] == ["hi"]
    kwargs = sdk.audio.transcriptions.create.call_args.kwargs
    assert kwargs["response_format"] == "verbose_json"
    assert kwargs["temperature"] == 0
    assert kwargs["language"] == "ta"
    assert kwargs["prompt"] == "Cooking Show"
    assert kwargs["file"] == (audio.name, b"RIFF")


def test_text_client_uses_title_in_system_prompt():
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="Fixed text."))]
    ))
    client = TextCorrectionClient(api_key="k", client=sdk)

    assert asyncio.run(client.correct("fixd text", "Cooking Show")) == "Fixed text."

    kwargs = sdk.chat.completions.create.call_args.kwargs
    assert kwargs["max_tokens"] == 4000
    assert kwargs["temperature"] == 0
    assert "Cooking Show" in kwargs["messages"][0]["content"]
    assert kwargs["messages"][1] == {"role": "user", "content": "fixd text"}


def test_text_client_no_choices():
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
    assert asyncio.run(TextCorrectionClient(api_key="k", client=sdk).correct("x")) == ""


class TestYtDlpDownloader:

    def test_build_options(self, tmp_path):
        cookies = tmp_path / "cookies.txt"
        cookies.write_text("# Netscape HTTP Cookie File")
        downloader = YtDlpDownloader(proxy_url="http://proxy:8080", cookies_file=cookies)

        opts = downloader.build_options("out.%(ext)s", user_agent="ua-1")

        assert opts["format"] == "bestaudio/best"
        assert opts["postprocessors"][0]["key"] == "FFmpegExtractAudio"
        assert opts["http_headers"] == {"Referer": "https://www.youtube.com/", "User-Agent": "ua-1"}
        assert opts["proxy"] == "http://proxy:8080"
        assert opts["cookiefile"] == str(cookies)

    def test_cookies_can_be_dropped(self, tmp_path):
        cookies = tmp_path / "cookies.txt"
        cookies.write_text("x")
        opts = YtDlpDownloader(cookies_file=cookies).build_options("o", use_cookies=False)
        assert "cookiefile" not in opts

    def test_missing_cookie_file_is_ignored(self, tmp_path):
        downloader = YtDlpDownloader(cookies_file=tmp_path / "missing.txt")
        assert not downloader.has_cookies
        assert "cookiefile" not in downloader.build_options("o")

    @patch("core.downloader.yt_dlp.YoutubeDL")
    def test_download_returns_audio_file(self, mock_ydl_cls, tmp_path):
        def fake_download(urls):
            (tmp_path / "audio_dQw4w9WgXcQ.mp3").write_bytes(b"\0" * 10)

        mock_ydl_cls.return_value.__enter__.return_value.download.side_effect = fake_download

        path = asyncio.run(YtDlpDownloader().download(
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ", tmp_path, "audio_dQw4w9WgXcQ"
        ))

        assert path == tmp_path / "audio_dQw4w9WgXcQ.mp3"


class TestVideoMetadataFetcher:

    @patch("core.video_metadata.yt_dlp.YoutubeDL")
    def test_title_and_description(self, mock_ydl_cls):
        mock_ydl_cls.return_value.__enter__.return_value.extract_info.return_value = {
            "title": "Cooking Show", "description": "Episode 1",
        }

        metadata = asyncio.run(VideoMetadataFetcher().fetch("dQw4w9WgXcQ"))

        assert metadata.title == "Cooking Show"
        assert metadata.description == "Episode 1"

    @patch("core.video_metadata.yt_dlp.YoutubeDL")
    def test_failure_degrades_to_empty(self, mock_ydl_cls):
        mock_ydl_cls.return_value.__enter__.return_value.extract_info.side_effect = RuntimeError("Private video")

        metadata = asyncio.run(VideoMetadataFetcher().fetch("dQw4w9WgXcQ"))

        assert metadata.video_id == "dQw4w9WgXcQ"
        assert metadata.title == ""
