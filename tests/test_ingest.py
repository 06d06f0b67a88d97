import logging
from pathlib import Path

from conftest import make_image
from PIL import Image

from photo_catalog.ingest import build_thumbnail, read_dimensions, read_exif, scan_photos
from photo_catalog.ingest.exif_reader import convert_gps_coordinate, parse_exif_datetime
from photo_catalog.ingest.sidecar import parse_sidecar, parse_sidecar_text, sidecar_path_for
from photo_catalog.ingest.thumbnailer import thumbnail_path_for

FULL_EXIF = {
    36867: "2021:01:02 03:04:05",
    306: "2020:12:31 23:59:59",  # fallback DateTime
    271: "TestMake ",
    272: "TestModel",
    274: 1,  # Orientation
    33434: (1, 60),  # ExposureTime 1/60s
    33437: (4, 1),  # FNumber f/4
    34855: 200,  # ISO
    37386: (35, 1),  # FocalLength 35mm
}


def test_scan_photos_finds_supported_files(tmp_path: Path) -> None:
    make_image(tmp_path / "a.jpg")
    make_image(tmp_path / "nested" / "B.PNG")
    make_image(tmp_path / "thumbnails" / "a_thumb.jpg")
    (tmp_path / "ignore.txt").write_text("skip me")

    photos = scan_photos(tmp_path)
    assert [p.name for p in photos] == ["a.jpg", "B.PNG"]


def test_read_exif_parses_fields(tmp_path: Path) -> None:
    file_path = make_image(tmp_path / "with_exif.jpg", exif=FULL_EXIF)

    exif = read_exif(file_path)
    assert exif.captured_at is not None
    assert (exif.captured_at.year, exif.captured_at.month, exif.captured_at.day) == (2021, 1, 2)
    assert exif.camera_make == "TestMake"
    assert exif.camera_model == "TestModel"
    assert exif.orientation == 1
    assert exif.iso == 200
    assert exif.focal_length == 35.0
    assert exif.f_number == 4.0
    assert abs(exif.exposure_time - 1 / 60) < 1e-9


def test_read_exif_falls_back_to_datetime(tmp_path: Path) -> None:
    file_path = make_image(tmp_path / "fallback.jpg", exif={306: "2020-12-31 23:59:59"})
    exif = read_exif(file_path)
    assert exif.captured_at is not None
    assert exif.captured_at.year == 2020


def test_read_exif_empty_for_plain_and_unreadable_files(tmp_path: Path) -> None:
    plain = make_image(tmp_path / "plain.jpg")
    garbage = tmp_path / "broken.jpg"
    garbage.write_bytes(b"not an image")

    assert read_exif(plain).is_empty()
    assert read_exif(garbage).is_empty()
    assert read_exif(tmp_path / "missing.jpg").is_empty()


def test_exif_datetime_formats() -> None:
    assert parse_exif_datetime("2021:01:02 03:04:05").hour == 3
    assert parse_exif_datetime("2021-01-02 03:04:05").minute == 4
    assert parse_exif_datetime("2021:01:02 03:04:05.250").microsecond == 250000
    assert parse_exif_datetime("yesterday") is None
    assert parse_exif_datetime(None) is None


def test_gps_conversion_is_signed_and_rounded() -> None:
    lat = convert_gps_coordinate((40.0, 26.0, 46.0), "N")
    lon = convert_gps_coordinate((79.0, 58.0, 56.0), b"W")
    assert lat == 40.44611111
    assert lon == -79.98222222
    assert convert_gps_coordinate((40.0, 26.0), "N") is None
    assert convert_gps_coordinate((40.0, 26.0, 46.0), None) is None


def test_read_dimensions(tmp_path: Path) -> None:
    assert read_dimensions(make_image(tmp_path / "wide.png", size=(64, 32))) == (64, 32)
    assert read_dimensions(tmp_path / "missing.png") is None


def test_sidecar_parsing(tmp_path: Path) -> None:
    image = tmp_path / "IMG_001.jpg"
    sidecar = sidecar_path_for(image)
    assert sidecar.name == "IMG_001.jpg.metadata"
    sidecar.write_text("tags=beach, sunset, ,vacation\nlocation=Hawaii\n\nnote=\n")

    fields = parse_sidecar(sidecar)
    assert fields == {
        "tags": ["beach", "sunset", "vacation"],
        "location": "Hawaii",
        "note": "",
    }
    assert list(fields) == ["tags", "location", "note"]


def test_sidecar_value_keeps_later_equals(tmp_path: Path) -> None:
    fields = parse_sidecar_text("formula=a=b+c")
    assert fields == {"formula": "a=b+c"}


def test_malformed_sidecar_lines_are_skipped(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        fields = parse_sidecar_text("no equals here\n=orphan\nlocation=Hawaii")
    assert fields == {"location": "Hawaii"}
    assert caplog.text.count("skipping") == 2


def test_sidecar_with_latin1_byte_keeps_other_lines(tmp_path: Path) -> None:
    sidecar = tmp_path / "photo.jpg.metadata"
    sidecar.write_bytes(b"location=San Francisco\ncaption=Caf\xe9\ntags=landscape,nature\n")

    fields = parse_sidecar(sidecar)
    assert fields["location"] == "San Francisco"
    assert fields["caption"] == "Caf\ufffd"
    assert fields["tags"] == ["landscape", "nature"]


def test_missing_sidecar_yields_nothing(tmp_path: Path) -> None:
    assert parse_sidecar(tmp_path / "nothing.jpg.metadata") == {}


def test_build_thumbnail_bounds_size(tmp_path: Path) -> None:
    photo = make_image(tmp_path / "big.jpg", size=(1920, 1080))
    thumb = build_thumbnail(photo, tmp_path)

    assert thumb == thumbnail_path_for(photo, tmp_path).resolve()
    assert thumb.name == "big_thumb.jpg"
    assert thumb.parent.name == "thumbnails"
    with Image.open(thumb) as img:
        assert img.size == (200, 113) or img.size == (200, 112)


def test_build_thumbnail_failure_returns_none(tmp_path: Path) -> None:
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"junk")
    assert build_thumbnail(broken, tmp_path) is None


def test_build_thumbnail_without_repo_uses_tempdir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("tempfile.tempdir", str(tmp_path / "tmp"))
    (tmp_path / "tmp").mkdir()
    photo = make_image(tmp_path / "small.png", size=(50, 40))
    thumb = build_thumbnail(photo, None)
    assert thumb is not None
    assert thumb.parent == (tmp_path / "tmp" / "thumbnails").resolve()
    with Image.open(thumb) as img:
        assert img.size == (50, 40)


def test_sidecar_tags_are_trimmed() -> None:
    assert parse_sidecar_text("tags=sunset, beach ,nature") == {"tags": ["sunset", "beach", "nature"]}
