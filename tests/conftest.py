import base64
import json
from io import BytesIO

import pytest
from PIL import Image


def png_bytes(size=(40, 56), color=(200, 30, 30, 255), mode="RGBA"):
    img = Image.new(mode, size, color)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def data_uri(data, mime="image/png"):
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.closed = False

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def close(self):
        self.closed = True


@pytest.fixture
def image_dir(tmp_path):
    folder = tmp_path / "images"
    folder.mkdir()
    colors = {
        "red.png": (220, 20, 20, 255),
        "green.png": (20, 200, 20, 255),
        "blue.png": (20, 20, 220, 255),
        "back.png": (40, 40, 40, 255),
    }
    for name, color in colors.items():
        (folder / name).write_bytes(png_bytes(color=color))
    return folder


@pytest.fixture
def deck_file(tmp_path, image_dir):
    data = {
        "cards": [
            {"name": "red", "src": "images/red.png", "qty": 4, "external": False},
            {"name": "green", "src": "images/green.png", "qty": 5, "external": False},
            {"name": "blue", "src": "images/blue.png", "qty": 2, "external": False},
        ],
        "backImage": "images/back.png",
        "settings": {
            "cardPreset": "63x88",
            "pageSize": "a4",
            "orientation": "portrait",
            "margin": "10",
            "gap": "0",
            "bleed": "0",
            "cropMarks": "short",
            "autoFit": "on",
            "frontBackMode": "front-only",
            "backFlipMode": "none",
            "fileName": "cards",
        },
    }
    path = tmp_path / "deck.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
