import json

from typer.testing import CliRunner

from article_digest import cli
from article_digest.cli import _decode_data_uri, _image_suffix, _write_output, app
from article_digest.errors import RateLimitError
from article_digest.models import ArticleDocument
from article_digest.service import Illustration

runner = CliRunner()

DOCUMENT = ArticleDocument(
    title="Council approves new riverside park",
    published_at="2024-05-01",
    body="The council voted on Tuesday.",
)


def test_write_output_json(tmp_path):
    out_file = tmp_path / "result.json"

    _write_output(out_file, text="unused", json_payload={"summary": "Итог"})

    written = json.loads(out_file.read_text(encoding="utf-8"))
    assert written == {"summary": "Итог"}


def test_write_output_text(tmp_path):
    out_file = tmp_path / "result.md"

    _write_output(out_file, text="Итог", json_payload={})

    assert out_file.read_text(encoding="utf-8") == "Итог"


def test_decode_data_uri():
    assert _decode_data_uri("data:image/png;base64,YWJj") == b"abc"


def test_image_suffix_follows_mime_type():
    assert _image_suffix("data:image/jpeg;base64,YWJj") == ".jpg"
    assert _image_suffix("data:image/webp;base64,YWJj") == ".webp"
    assert _image_suffix("data:image/png;base64,YWJj") == ".png"
    assert _image_suffix("data:;base64,YWJj") == ".png"


def test_extract_json(monkeypatch):
    async def fake_extract(url):
        return DOCUMENT

    monkeypatch.setattr(cli, "extract_article", fake_extract)

    result = runner.invoke(app, ["extract", "https://news.test/a", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["publishedAt"] == "2024-05-01"


def test_generate_passes_article_context(monkeypatch, tmp_path):
    seen = {}

    async def fake_extract(url):
        return DOCUMENT

    async def fake_generate(task, body, context):
        seen.update(task=task.kind, body=body, **context)
        return "Пост"

    monkeypatch.setattr(cli, "extract_article", fake_extract)
    monkeypatch.setattr(cli, "generate_text", fake_generate)
    out_file = tmp_path / "post.json"

    result = runner.invoke(app, ["generate", "telegram", "https://news.test/a", "--out", str(out_file)])

    assert result.exit_code == 0
    assert json.loads(out_file.read_text(encoding="utf-8")) == {
        "post": "Пост",
        "source": "https://news.test/a",
    }
    assert seen["task"] == "social-post"
    assert seen["source_url"] == "https://news.test/a"
    assert seen["title"] == DOCUMENT.title


def test_generate_refuses_empty_article(monkeypatch):
    async def fake_extract(url):
        return ArticleDocument(title="Nothing here at all", body="")

    async def fake_generate(task, body, context):
        raise AssertionError("should not generate from an empty body")

    monkeypatch.setattr(cli, "extract_article", fake_extract)
    monkeypatch.setattr(cli, "generate_text", fake_generate)

    result = runner.invoke(app, ["generate", "summarize", "https://news.test/a"])

    assert result.exit_code == 1


def test_generate_rate_limited_exits_nonzero(monkeypatch):
    async def fake_extract(url):
        return DOCUMENT

    async def fake_generate(task, body, context):
        raise RateLimitError(5)

    monkeypatch.setattr(cli, "extract_article", fake_extract)
    monkeypatch.setattr(cli, "generate_text", fake_generate)

    result = runner.invoke(app, ["generate", "thesis", "https://news.test/a"])

    assert result.exit_code == 1
    assert "5 seconds" in result.stdout


def test_illustrate_writes_image(monkeypatch, tmp_path):
    async def fake_extract(url):
        return DOCUMENT

    async def fake_illustration(body):
        return Illustration(image="data:image/png;base64,YWJj", prompt="A park")

    monkeypatch.setattr(cli, "extract_article", fake_extract)
    monkeypatch.setattr(cli, "create_illustration", fake_illustration)
    out_file = tmp_path / "image.png"

    result = runner.invoke(app, ["illustrate", "https://news.test/a", "--out", str(out_file)])

    assert result.exit_code == 0
    assert out_file.read_bytes() == b"abc"


def test_illustrate_default_name_matches_image_type(monkeypatch, tmp_path):
    async def fake_extract(url):
        return DOCUMENT

    async def fake_illustration(body):
        return Illustration(image="data:image/jpeg;base64,YWJj", prompt="A park")

    monkeypatch.setattr(cli, "extract_article", fake_extract)
    monkeypatch.setattr(cli, "create_illustration", fake_illustration)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["illustrate", "https://news.test/a"])

    assert result.exit_code == 0
    assert (tmp_path / "illustration.jpg").read_bytes() == b"abc"
    assert not (tmp_path / "illustration.png").exists()
