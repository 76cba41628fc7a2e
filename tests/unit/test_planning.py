import os
from gifbatch.infrastructure.file_scanner import FileScanner
from gifbatch.pipeline.planning import build_plan, expand_inputs

def test_default_output_next_to_input(tmp_path):
    video = str(tmp_path / "clips" / "beach.mp4")

    (request,) = build_plan([video], fps=15, width=480, quality=90)

    expected_folder = os.path.join(str(tmp_path / "clips"), "gifs")
    assert request.output_folder == expected_folder
    assert request.output_path == os.path.join(expected_folder, "beach.gif")
    assert (request.fps, request.width, request.quality) == (15, 480, 90)

def test_explicit_output_folder_and_subdir(tmp_path):
    video = str(tmp_path / "a.mov")

    (explicit,) = build_plan([video], 10, 320, 80, output_folder=str(tmp_path / "out"))
    (subdir,) = build_plan([video], 10, 320, 80, output_subdir="animated")

    assert explicit.output_path == os.path.join(str(tmp_path / "out"), "a.gif")
    assert subdir.output_path == os.path.join(str(tmp_path), "animated", "a.gif")

def test_custom_names(tmp_path):
    video = str(tmp_path / "a.mp4")
    (request,) = build_plan([video], 10, 320, 80, names={video: "intro"})
    assert os.path.basename(request.output_path) == "intro.gif"

def test_duplicates_dropped_keeping_order(tmp_path):
    a = str(tmp_path / "a.mp4")
    b = str(tmp_path / "b.mp4")

    plan = build_plan([b, a, os.path.join(str(tmp_path), ".", "b.mp4")], 10, 320, 80)

    assert [r.display_name for r in plan] == ["b.mp4", "a.mp4"]

def test_expand_inputs(tmp_path):
    folder = tmp_path / "folder"
    folder.mkdir()
    (folder / "x.mp4").write_bytes(b"x")
    (folder / "y.txt").write_bytes(b"x")
    single = tmp_path / "single.MOV"
    single.write_bytes(b"x")
    other = tmp_path / "doc.pdf"
    other.write_bytes(b"x")

    files = expand_inputs([str(folder), str(single), str(other), str(tmp_path / "missing.mp4")], FileScanner())

    assert [os.path.basename(f) for f in files] == ["x.mp4", "single.MOV"]
