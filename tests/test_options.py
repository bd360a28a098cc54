import pytest

from imagepatch.dockerctx import ConnectionOptions
from imagepatch.options import (
    OptionsError,
    PatchMode,
    PatchOptions,
    build_parser,
    determine_patch_mode,
    handle_platform_error,
    parse_duration,
    parse_patch_args,
)
from imagepatch.platforms import PatchPlatform


def test_missing_image_flag():
    with pytest.raises(OptionsError) as info:
        parse_patch_args(["-r", "trivy.json", "-t", "3.7-alpine-patched"])
    assert str(info.value) == 'required flag(s) "image" not set'


def test_defaults():
    options = parse_patch_args(["-i", "alpine:3.19"])
    assert options == PatchOptions(image="alpine:3.19")
    assert options.suffix == "patched"
    assert options.scanner == "trivy"
    assert options.format == "openvex"
    assert options.timeout == 300.0
    assert options.platform_specific_errors == "skip"
    assert options.push is False
    assert options.ignore_errors is False


def test_all_flags():
    options = parse_patch_args(
        [
            "--image", "images/python:3.7-alpine",
            "--report", "trivy.json",
            "--tag", "3.7-alpine-patched",
            "--tag-suffix", "security",
            "-w", "/tmp/work",
            "-a", "tcp://buildkit:1234",
            "--cacert", "/certs/ca.pem",
            "--cert", "/certs/cert.pem",
            "--key", "/certs/key.pem",
            "--timeout", "30m",
            "-s", "custom",
            "--ignore-errors",
            "-f", "json",
            "-o", "vex.json",
            "--platform-specific-errors", "fail",
            "-p",
        ]
    )
    assert options.image == "images/python:3.7-alpine"
    assert options.report_file == "trivy.json"
    assert options.patched_tag == "3.7-alpine-patched"
    assert options.suffix == "security"
    assert options.working_folder == "/tmp/work"
    assert options.connection == ConnectionOptions(
        addr="tcp://buildkit:1234",
        ca_cert_path="/certs/ca.pem",
        cert_path="/certs/cert.pem",
        key_path="/certs/key.pem",
    )
    assert options.timeout == 1800.0
    assert options.scanner == "custom"
    assert options.ignore_errors is True
    assert options.format == "json"
    assert options.output == "vex.json"
    assert options.platform_specific_errors == "fail"
    assert options.push is True


def test_equals_style_flags():
    options = parse_patch_args(
        ["-i=alpine:3.7.3", "-t=3.7.3-patched", "--ignore-errors=false", "--timeout=30m"]
    )
    assert options.image == "alpine:3.7.3"
    assert options.patched_tag == "3.7.3-patched"
    assert options.ignore_errors is False
    assert options.timeout == 1800.0


def test_bad_boolean_value():
    with pytest.raises(OptionsError):
        parse_patch_args(["-i", "alpine:3.19", "--ignore-errors=maybe"])


def test_unknown_flag():
    with pytest.raises(OptionsError):
        parse_patch_args(["-i", "alpine:3.19", "--nope"])


def test_bad_timeout_flag():
    with pytest.raises(OptionsError) as info:
        parse_patch_args(["-i", "alpine:3.19", "--timeout", "5"])
    assert "missing unit" in str(info.value)


def test_build_parser_defaults():
    args = build_parser().parse_args([])
    assert args.suffix == "patched"
    assert args.scanner == "trivy"
    assert args.timeout == 300.0


@pytest.mark.parametrize(
    "text, seconds",
    [
        ("5m", 300.0),
        ("30m", 1800.0),
        ("1h30m", 5400.0),
        ("1.5s", 1.5),
        ("300ms", 0.3),
        ("0", 0.0),
        ("-2s", -2.0),
        ("+1h", 3600.0),
        (".5s", 0.5),
    ],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize(
    "text, message",
    [
        ("", 'time: invalid duration ""'),
        ("abc", 'time: invalid duration "abc"'),
        (".s", 'time: invalid duration ".s"'),
        ("10", 'time: missing unit in duration "10"'),
        ("5x", 'time: unknown unit "x" in duration "5x"'),
    ],
)
def test_parse_duration_errors(text, message):
    with pytest.raises(OptionsError) as info:
        parse_duration(text)
    assert str(info.value) == message


def test_mode_both_report_options():
    options = PatchOptions(image="a:1", report_file="r.json", report_directory="reports")
    with pytest.raises(OptionsError) as info:
        determine_patch_mode(options)
    assert str(info.value) == "both report file and directory provided, please provide only one"


def test_mode_no_report():
    assert determine_patch_mode(PatchOptions(image="a:1")) is PatchMode.NO_REPORT


def test_mode_report_file(tmp_path):
    report = tmp_path / "report.json"
    report.write_text("{}")
    options = PatchOptions(image="a:1", report_file=str(report))
    assert determine_patch_mode(options) is PatchMode.REPORT_FILE


def test_mode_missing_report_file(tmp_path):
    missing = tmp_path / "missing.json"
    with pytest.raises(OptionsError) as info:
        determine_patch_mode(PatchOptions(image="a:1", report_file=str(missing)))
    assert str(info.value) == f"report file {missing} does not exist"


def test_mode_report_file_is_directory(tmp_path):
    with pytest.raises(OptionsError) as info:
        determine_patch_mode(PatchOptions(image="a:1", report_file=str(tmp_path)))
    assert str(info.value) == f"report file {tmp_path} is a directory, please provide a file"


def test_mode_report_directory(tmp_path):
    options = PatchOptions(image="a:1", report_directory=str(tmp_path))
    assert determine_patch_mode(options) is PatchMode.MULTI_ARCH


def test_mode_report_directory_is_file(tmp_path):
    report = tmp_path / "report.json"
    report.write_text("{}")
    with pytest.raises(OptionsError) as info:
        determine_patch_mode(PatchOptions(image="a:1", report_directory=str(report)))
    assert str(info.value) == f"provided report directory path {report} is not a directory"


def test_mode_report_directory_missing(tmp_path):
    with pytest.raises(OptionsError):
        determine_patch_mode(
            PatchOptions(image="a:1", report_directory=str(tmp_path / "nowhere"))
        )


PLATFORM = PatchPlatform(os="linux", architecture="arm64")


@pytest.mark.parametrize("policy", ["ignore", "skip"])
def test_handle_platform_error_tolerated(policy):
    assert handle_platform_error(policy, PLATFORM, ValueError("boom")) is None


@pytest.mark.parametrize("policy", ["fail", "warn", ""])
def test_handle_platform_error_fails(policy):
    cause = ValueError("boom")
    with pytest.raises(RuntimeError) as info:
        handle_platform_error(policy, PLATFORM, cause)
    assert str(info.value) == "platform linux/arm64 failed: boom"
    assert info.value.__cause__ is cause