# imagepatch

Client-side building blocks for patching container images with the package
updates named in a vulnerability report:

- `imagepatch.reference`: parsing and normalising image references;
- `imagepatch.tags`: naming the patched image and per-architecture tags;
- `imagepatch.osrelease`: detecting the distribution from `/etc/os-release`;
- `imagepatch.platforms`: target platforms, QEMU names and emulation checks;
- `imagepatch.imageconfig`: the `BaseImage` label and platform fields of an
  image configuration;
- `imagepatch.dockerctx` and `imagepatch.buildx`: finding the Docker endpoint
  and the buildx builder to connect to;
- `imagepatch.options`: the options of the `patch` command and the choice of
  patching mode.

It has no third-party dependencies. `addr_from_context` and
`addr_from_docker_context` call the `docker` CLI, which must be on `PATH` for
them.

## Image references and tags

```python
from imagepatch.reference import parse_normalized_named
from imagepatch.tags import arch_tag, get_repo_name_with_digest, resolve_patched_tag

ref = parse_normalized_named("nginx:1.23")
ref.name()                                # "docker.io/library/nginx"
str(ref)                                  # "docker.io/library/nginx:1.23"
resolve_patched_tag(ref, "", "")          # "1.23-patched"
resolve_patched_tag(ref, "", "security")  # "1.23-security"
resolve_patched_tag(ref, "my-tag", "")    # "my-tag"

arch_tag("patched", "arm", "v7")          # "patched-arm-v7"
get_repo_name_with_digest("docker.io/library/nginx:1.21.6-patched", "sha256:abc")
# "nginx@sha256:abc"
```

`ImageReference` also has `is_name_only()` and `with_default_tag(tag)`.
Invalid references raise `ReferenceError`. A reference with no tag cannot take
a suffix, so `resolve_patched_tag` raises `ValueError` for it unless an
explicit tag is given.

`manifest_create_args(image, final_tag, items)` returns the
`docker buildx imagetools create` command line that joins `(tag, digest)`
pairs into one manifest list; it does not run it.
`remove_if_not_debug(folder, debug)` deletes a working folder unless `debug`
is true, in which case it logs a warning and keeps it.

## Distribution detection

```python
from imagepatch.osrelease import get_os_type, get_os_version, parse_os_release

data = b'NAME="Debian GNU/Linux"\nVERSION_ID="11"\n'
parse_os_release(data)  # {"NAME": "Debian GNU/Linux", "VERSION_ID": "11"}
get_os_type(data)       # "debian"
get_os_version(data)    # "11"
```

Recognised families are alpine, debian, ubuntu, amazon, centos, cbl-mariner,
azurelinux, redhat, rocky, oracle and alma, matched against the `NAME` field.
Anything else raises `UnsupportedOSError`; malformed lines raise
`OSReleaseError`.

## Platforms and emulation

```python
from imagepatch.platforms import PatchPlatform, is_supported_os_type, map_go_arch

map_go_arch("arm64", "")        # "aarch64"
map_go_arch("ppc64", "le")      # "ppc64le"
is_supported_os_type("ubuntu")  # True
PatchPlatform("linux", "arm64").key()  # "linux/arm64"
```

- `qemu_available(platform, binfmt_dir)` looks for a registered
  `binfmt_misc` interpreter for the platform and falls back to a
  `qemu-<arch>-static` binary on `PATH`.
- `discover_platforms_from_reports(report_dir, parse_report)` builds one
  platform per report file; `parse_report` is your callable returning
  `(os_type, arch)` for a path. Unsupported OS types are skipped.
- `intersect_platforms(image_platforms, report_platforms)` keeps the image's
  platforms that also have a report. `None` for the image platforms means the
  image is not multi-arch and raises `ValueError`.
- `array_file(lines)` joins lines into bytes, each ending in a newline.

## Image configuration

`setup_labels(image, config)` returns the existing `BaseImage` label (empty
when absent) and the configuration serialised with the label in place.
`update_image_config_data(resolve_config, config, image)` returns a
`ResolvedConfig`: for an image already carrying a `BaseImage` label, its own
configuration becomes `patched_config_data` and the base image's configuration,
fetched through `resolve_config`, becomes `config_data`.
`normalize_config_for_platform(config, platform)` sets `architecture`, `os`
and `variant` for the target platform, dropping `variant` when the platform
has none. Errors raise `ImageConfigError`.

## Connecting to BuildKit

- `ConnectionOptions` holds the daemon address and TLS file paths;
  `credential_options(opts)` describes the TLS settings they imply and
  `get_server_name_from_addr(addr)` extracts the host name.
- `addr_from_docker_context()` returns the endpoint of the context named by
  `DOCKER_CONTEXT`, or of the one `docker context ls` marks current
  (`NoDockerContextError` when none is). `select_current_endpoint(lines)`
  does the selection on already captured output.
- `parse_buildx_url("buildx://name")` returns the builder name;
  `current_buildx_builder(config_dir)` reads `BUILDX_BUILDER` or buildx's
  current builder; `load_buildx_config(config_dir, builder)` reads a
  `docker-container` builder's nodes; `BuildxConfig.pick_node()` chooses one
  and `container_name(node)` names its buildkit container.

## The `patch` options

```python
from imagepatch.options import determine_patch_mode, parse_duration, parse_patch_args

options = parse_patch_args(["-i", "alpine:3.19", "--timeout", "10m"])
options.timeout                  # 600.0
determine_patch_mode(options)    # PatchMode.NO_REPORT
parse_duration("1h30m")          # 5400.0
```

`--image` is required; the other options are `--report`, `--report-directory`,
`--tag`, `--tag-suffix` (default `patched`), `--working-folder`, `--addr`,
`--cacert`, `--cert`, `--key`, `--timeout` (default `5m`), `--scanner`
(default `trivy`), `--ignore-errors`, `--format` (default `openvex`),
`--output`, `--platform-specific-errors` (default `skip`) and `--push`.
Bad options raise `OptionsError`, as does giving both a report file and a
report directory. `determine_patch_mode` returns `REPORT_FILE`, `NO_REPORT`
or `MULTI_ARCH`. `handle_platform_error(policy, platform, error)` lets
`ignore` and `skip` pass and raises for any other policy.

## What it does not do

The package does not patch images itself and installs no command. It does not
talk to a BuildKit daemon, install package updates in an image, pull, load or
push images, parse scanner reports or write VEX documents. Its functions give
you the names, configurations, endpoints and decisions such a tool needs.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.