from askai.projects import ProjectKind, ProjectScanner, detect


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")


def test_detect_marker_files(tmp_path):
    _touch(tmp_path / "api" / "Cargo.toml")
    _touch(tmp_path / "web" / "package.json")
    _touch(tmp_path / "tool" / "pyproject.toml")
    _touch(tmp_path / "svc" / "go.mod")
    _touch(tmp_path / "legacy" / "pom.xml")
    _touch(tmp_path / "site" / "Gemfile")

    assert detect(tmp_path / "api").kind is ProjectKind.RUST
    assert detect(tmp_path / "web").kind is ProjectKind.NODE
    assert detect(tmp_path / "tool").kind is ProjectKind.PYTHON
    assert detect(tmp_path / "svc").kind is ProjectKind.GO
    assert detect(tmp_path / "legacy").kind is ProjectKind.JAVA
    assert detect(tmp_path / "site").kind is ProjectKind.RUBY
    assert detect(tmp_path) is None


def test_git_only_directory_is_unknown(tmp_path):
    (tmp_path / "notes" / ".git").mkdir(parents=True)
    project = detect(tmp_path / "notes")
    assert project.kind is ProjectKind.UNKNOWN
    assert project.is_git


def test_mixed_project_keeps_all_kinds(tmp_path):
    _touch(tmp_path / "Cargo.toml")
    _touch(tmp_path / "package.json")
    project = detect(tmp_path)
    assert project.kind is ProjectKind.RUST
    assert project.kinds == [ProjectKind.RUST, ProjectKind.NODE]
    assert "Also detected: node" in project.to_context()


def test_scan_respects_depth_and_excludes(tmp_path):
    _touch(tmp_path / "a" / "package.json")
    _touch(tmp_path / "a" / "node_modules" / "dep" / "package.json")
    _touch(tmp_path / "b" / "c" / "pyproject.toml")
    _touch(tmp_path / "d" / "e" / "f" / "g" / "Cargo.toml")

    result = ProjectScanner(max_depth=3).scan(tmp_path)

    names = [p.path.name for p in result.projects]
    assert names == ["a", "c"]
    assert result.summary()["total"] == 2


def test_scan_results_are_sorted_by_path(tmp_path):
    for name in ("zeta", "alpha", "mid"):
        _touch(tmp_path / name / "go.mod")

    result = ProjectScanner().scan(tmp_path)

    assert [p.path.name for p in result.projects] == ["alpha", "mid", "zeta"]


def test_scan_kind_filter(tmp_path):
    _touch(tmp_path / "rs" / "Cargo.toml")
    _touch(tmp_path / "js" / "package.json")

    result = ProjectScanner().scan(tmp_path, kind=ProjectKind.NODE)

    assert [p.path.name for p in result.projects] == ["js"]


def test_root_itself_can_be_a_project(tmp_path):
    _touch(tmp_path / "requirements.txt")
    result = ProjectScanner(max_depth=0).scan(tmp_path)
    assert [p.path for p in result.projects] == [tmp_path.resolve()]


def test_kind_parse_aliases():
    assert ProjectKind.parse("npm") is ProjectKind.NODE
    assert ProjectKind.parse("Cargo") is ProjectKind.RUST
    assert ProjectKind.parse("python") is ProjectKind.PYTHON
    assert ProjectKind.parse("cobol") is ProjectKind.UNKNOWN
