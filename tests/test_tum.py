import pytest

from slamcore.tum import RGBDSequence, load_tum_mono, load_tum_rgbd


def _write_rgb(tmp_path, body):
    (tmp_path / "rgb.txt").write_text(body)
    return tmp_path


def test_mono_reads_names_and_timestamps(tmp_path):
    seq = _write_rgb(
        tmp_path,
        "# color images\n# file: 'x.bag'\n# timestamp filename\n"
        "1305031102.175304 rgb/1305031102.175304.png\n"
        "1305031102.211214 rgb/1305031102.211214.png\n",
    )
    result = load_tum_mono(seq)
    assert result.images == [
        "rgb/1305031102.175304.png",
        "rgb/1305031102.211214.png",
    ]
    assert result.timestamps == [1305031102.175304, 1305031102.211214]


def test_mono_skips_three_header_lines_whatever_they_hold(tmp_path):
    seq = _write_rgb(tmp_path, "1.0 a.png\n2.0 b.png\n3.0 c.png\n4.0 d.png\n")
    result = load_tum_mono(seq)
    assert list(result) == [("d.png", 4.0)]


def test_mono_ignores_blank_lines(tmp_path):
    seq = _write_rgb(tmp_path, "h\nh\nh\n\n5.0 e.png\n\n")
    assert len(load_tum_mono(seq)) == 1


def test_mono_short_file_is_empty(tmp_path):
    seq = _write_rgb(tmp_path, "# only\n# header\n")
    assert len(load_tum_mono(seq)) == 0


def test_mono_missing_name_raises(tmp_path):
    seq = _write_rgb(tmp_path, "h\nh\nh\n7.0\n")
    with pytest.raises(ValueError):
        load_tum_mono(seq)


def test_mono_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_tum_mono(tmp_path)


def test_rgbd_reads_association(tmp_path):
    path = tmp_path / "assoc.txt"
    path.write_text(
        "1305031102.175304 rgb/1305031102.175304.png "
        "1305031102.160407 depth/1305031102.160407.png\n"
        "1305031102.211214 rgb/1305031102.211214.png "
        "1305031102.226738 depth/1305031102.226738.png\n"
    )
    result = load_tum_rgbd(path)
    assert result.rgb == ["rgb/1305031102.175304.png", "rgb/1305031102.211214.png"]
    assert result.depth == [
        "depth/1305031102.160407.png",
        "depth/1305031102.226738.png",
    ]
    assert result.timestamps == [1305031102.175304, 1305031102.211214]


def test_rgbd_incomplete_line_raises(tmp_path):
    path = tmp_path / "assoc.txt"
    path.write_text("1.0 rgb/a.png 1.0\n")
    with pytest.raises(ValueError):
        load_tum_rgbd(path)


def test_rgbd_sequence_rejects_unequal_counts():
    with pytest.raises(ValueError):
        RGBDSequence(rgb=["a.png"], depth=[], timestamps=[1.0])


def test_rgbd_sequence_iterates_triples():
    seq = RGBDSequence(rgb=["a.png"], depth=["b.png"], timestamps=[1.0])
    assert list(seq) == [("a.png", "b.png", 1.0)]