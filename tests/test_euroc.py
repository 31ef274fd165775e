import pytest

from slamcore.euroc import load_euroc_mono, load_euroc_stereo


@pytest.fixture
def times_file(tmp_path):
    path = tmp_path / "times.txt"
    path.write_text("1403636579763555584\n\n1403636579813555456\n")
    return path


def test_mono_names_images_after_lines(times_file, tmp_path):
    seq = load_euroc_mono(tmp_path / "cam0", times_file)
    assert seq.images == [
        f"{tmp_path / 'cam0'}/1403636579763555584.png",
        f"{tmp_path / 'cam0'}/1403636579813555456.png",
    ]


def test_mono_converts_nanoseconds_to_seconds(tmp_path):
    path = tmp_path / "t.txt"
    path.write_text("2000000000\n500000000\n")
    seq = load_euroc_mono("img", path)
    assert seq.timestamps == [2.0, 0.5]


def test_timestamps_are_increasing(times_file):
    seq = load_euroc_mono("img", times_file)
    assert len(seq) == 2
    assert seq.timestamps[0] < seq.timestamps[1]


def test_stereo_uses_both_folders(times_file):
    seq = load_euroc_stereo("left", "right", times_file)
    assert seq.left[0] == "left/1403636579763555584.png"
    assert seq.right[1] == "right/1403636579813555456.png"
    assert seq.timestamps == load_euroc_mono("left", times_file).timestamps


def test_stereo_sides_match_in_length(times_file):
    seq = load_euroc_stereo("l", "r", times_file)
    assert len(seq.left) == len(seq.right) == len(seq.timestamps) == 2


def test_missing_times_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_euroc_mono("img", tmp_path / "absent.txt")


def test_unparsable_line_raises(tmp_path):
    path = tmp_path / "t.txt"
    path.write_text("frame\n")
    with pytest.raises(ValueError):
        load_euroc_stereo("l", "r", path)


def test_empty_file_gives_empty_sequence(tmp_path):
    path = tmp_path / "t.txt"
    path.write_text("\n\n")
    seq = load_euroc_mono("img", path)
    assert len(seq) == 0
    assert seq.images == []