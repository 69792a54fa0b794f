import pytest

from libsync.cli import enumerate_files, main


@pytest.fixture
def run(tmp_path, monkeypatch):
    monkeypatch.delenv("LIBSYNC_DB_PATH", raising=False)
    base = ["--config", str(tmp_path / "config.toml"), "--db", str(tmp_path / "library.db"), "--log-level", "ERROR"]

    def _run(*argv):
        return main(base + list(argv))

    return _run


@pytest.fixture
def music(tmp_path):
    root = tmp_path / "Music"
    (root / "Album").mkdir(parents=True)
    (root / "Album" / "01 - Intro.mp3").write_bytes(b"not really audio")
    (root / "Album" / "cover.jpg").write_bytes(b"\xff\xd8")
    (root / "Loose - Single.flac").write_bytes(b"also not audio")
    return root


def test_enumerate_files_uses_relative_posix_paths(music):
    files = {f.path: f for f in enumerate_files(music)}
    assert set(files) == {"Album/01 - Intro.mp3", "Album/cover.jpg", "Loose - Single.flac"}
    assert files["Album/01 - Intro.mp3"].directory == "Album"
    assert files["Loose - Single.flac"].directory == ""
    assert files["Album/cover.jpg"].local_path == str(music / "Album" / "cover.jpg")


def test_add_scan_and_list(run, music, capsys):
    assert run("add", str(music)) == 0
    assert run("add", str(music)) == 0
    out = capsys.readouterr().out
    assert "Added" in out and "Already in library" in out

    # A new process: the folder is re-verified inside the command's user gesture
    assert run("scan") == 0
    assert "Scan complete: 2 tracks" in capsys.readouterr().out

    assert run("tracks") == 0
    out = capsys.readouterr().out
    assert "Intro" in out and "Single" in out

    assert run("search", "loose") == 0
    assert "Single" in capsys.readouterr().out

    # Every restart asks for the grant again before the next scan
    assert run("folders") == 0
    assert f"{music}\tneeds verification" in capsys.readouterr().out


def test_legacy_add_and_scan(run, music, capsys):
    assert run("add", "--legacy", str(music)) == 0
    assert run("scan") == 0
    assert run("stats") == 0
    out = capsys.readouterr().out
    assert "tracks:    2" in out
    assert "last scan:" in out


def test_scan_without_folders_fails(run, capsys):
    assert run("scan") == 2
    assert "None of your library folders could be read" in capsys.readouterr().out


def test_playlist_commands(run, music, capsys):
    run("add", "--legacy", str(music))
    run("scan")
    capsys.readouterr()

    assert run("playlist", "create", "Favs") == 0
    pid = capsys.readouterr().out.strip()
    assert pid.startswith("playlist-")

    run("tracks")
    track_id = capsys.readouterr().out.splitlines()[0].split("\t")[0]
    assert run("playlist", "add", pid, track_id) == 0
    assert run("play", track_id) == 0
    assert run("playlist", "show", pid) == 0
    assert track_id in capsys.readouterr().out

    assert run("tracks", "--most-played") == 0
    first = capsys.readouterr().out.splitlines()[0].split("\t")
    assert first[0] == track_id and first[-1] == "1"

    assert run("playlist", "delete", pid) == 0
    assert run("playlist", "show", pid) == 1


def test_remove_unknown_folder(run, tmp_path):
    assert run("remove", str(tmp_path / "nowhere")) == 1


def test_config_prints_and_writes(run, tmp_path, capsys):
    assert run("config") == 0
    assert "snapshot_key" in capsys.readouterr().out

    assert run("--write-config", "folders") == 0
    assert (tmp_path / "config.toml").exists()
