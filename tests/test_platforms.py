from unittest import mock

import pytest

from imagepatch.platforms import (
    PatchPlatform,
    array_file,
    discover_platforms_from_reports,
    intersect_platforms,
    is_supported_os_type,
    map_go_arch,
    qemu_available,
)


@pytest.mark.parametrize(
    "arch, variant, want",
    [
        ("amd64", "", "x86_64"),
        ("386", "", "i386"),
        ("arm", "v7", "arm"),
        ("arm", "v5eb", "armeb"),
        ("mips64", "n32", "mipsn32"),
        ("mips64", "", "mips64"),
        ("ppc64", "le", "ppc64le"),
        ("loong64", "", "loongarch64"),
        ("xtensa", "eb", "xtensaeb"),
        ("unknown", "", "unknown"),
        ("arm64", "", "aarch64"),
        ("mips64le", "n32", "mipsn32el"),
        ("mips64le", "", "mips64el"),
        ("microblaze", "el", "microblazeel"),
        ("sh4", "", "sh4"),
    ],
)
def test_map_go_arch(arch, variant, want):
    assert map_go_arch(arch, variant) == want


@pytest.mark.parametrize(
    "os_type",
    ["alpine", "debian", "ubuntu", "cbl-mariner", "azurelinux", "centos",
     "oracle", "redhat", "rocky", "amazon", "alma"],
)
def test_supported_os_types(os_type):
    assert is_supported_os_type(os_type) is True


@pytest.mark.parametrize("os_type", ["windows", "freebsd", "plan9"])
def test_unsupported_os_types(os_type):
    assert is_supported_os_type(os_type) is False


ARM = PatchPlatform(os="linux", architecture="arm64")
AMD = PatchPlatform(os="linux", architecture="amd64")


def test_qemu_nil_platform():
    assert qemu_available(None) is False


def test_qemu_binfmt_match(tmp_path):
    (tmp_path / "arm").write_bytes(b"interpreter /usr/bin/qemu-aarch64")
    with mock.patch("shutil.which", return_value=None):
        assert qemu_available(ARM, tmp_path) is True


def test_qemu_register_entry_ignored(tmp_path):
    (tmp_path / "register").write_bytes(b"interpreter /usr/bin/qemu-aarch64")
    with mock.patch("shutil.which", return_value=None):
        assert qemu_available(ARM, tmp_path) is False


def test_qemu_lookpath_fallback(tmp_path):
    with mock.patch("shutil.which", return_value="/usr/bin/qemu-aarch64-static") as which:
        assert qemu_available(ARM, tmp_path) is True
    which.assert_called_once_with("qemu-aarch64-static")


def test_qemu_no_match(tmp_path):
    with mock.patch("shutil.which", return_value=None):
        assert qemu_available(AMD, tmp_path) is False


def test_qemu_missing_binfmt_dir(tmp_path):
    with mock.patch("shutil.which", return_value=None):
        assert qemu_available(ARM, tmp_path / "absent") is False


@pytest.mark.parametrize(
    "lines, expected",
    [(["line"], b"line\n"), (["line", "another"], b"line\nanother\n"), ([], b"")],
)
def test_array_file(lines, expected):
    assert array_file(lines) == expected


def test_platform_key():
    assert PatchPlatform(os="linux", architecture="arm", variant="v7").key() == "linux/arm"


def test_discover_platforms_from_reports(tmp_path):
    reports = {"a.json": ("debian", "amd64"), "b.json": ("windows", "amd64"), "c.json": ("alpine", "arm64")}
    for name in reports:
        (tmp_path / name).write_text("{}")
    (tmp_path / "sub").mkdir()

    def parse(path):
        return reports[path.rsplit("/", 1)[1]]

    found = discover_platforms_from_reports(tmp_path, parse)
    assert found == [
        PatchPlatform(os="linux", architecture="amd64", report_file=f"{tmp_path}/a.json"),
        PatchPlatform(os="linux", architecture="arm64", report_file=f"{tmp_path}/c.json"),
    ]


def test_discover_platforms_parse_error(tmp_path):
    (tmp_path / "bad.json").write_text("nope")

    def parse(path):
        raise ValueError("broken")

    with pytest.raises(ValueError, match="error parsing report broken"):
        discover_platforms_from_reports(tmp_path, parse)


def test_intersect_platforms_keeps_reference_order():
    reference = [AMD, ARM, PatchPlatform(os="linux", architecture="s390x")]
    reported = [PatchPlatform(os="linux", architecture="arm64", report_file="r1"), AMD]
    assert intersect_platforms(reference, reported) == [AMD, ARM]


def test_intersect_platforms_without_reports():
    assert intersect_platforms([AMD, ARM], None) == [AMD, ARM]


def test_intersect_platforms_not_multi_arch():
    with pytest.raises(ValueError, match="image is not multi arch"):
        intersect_platforms(None, [AMD])