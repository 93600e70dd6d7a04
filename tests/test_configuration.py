import textwrap

import pytest

from pgflow.core.configuration import ConfigurationLoader, build_group_specs, build_spawner
from pgflow.core.errors import ConfigurationError
from pgflow.core.indicators import GroupEnd
from pgflow.core.spawners import CargoSpawner, CommandSpawner

CONFIG = """
parent_dir: crates
poll_interval: 0.05
spawner:
  type: command
  command: ["python", "{task}.py", "{options}"]
  env: {RUST_BACKTRACE: 1}
groups:
  - name: smoke
    group_end: OnFailureStopAll
    tasks:
      - subdir: alpha
        task: main
        options: [fast]
        metadata: {owner: ci}
      - subdir: beta
        task: bench
        description: beta benchmarks
  - name: full
    tasks:
      - {subdir: gamma, task: main}
"""


def _write(tmp_path, text):
    p = tmp_path / "run.yaml"
    p.write_text(textwrap.dedent(text))
    return p


def test_load_configuration(tmp_path):
    loader = ConfigurationLoader(_write(tmp_path, CONFIG))
    cfg = loader.load_configuration()
    assert cfg.poll_interval == 0.05
    assert cfg.spawner.env == {"RUST_BACKTRACE": "1"}
    assert loader.resolve_parent_dir(cfg) == (tmp_path / "crates").resolve()
    assert cfg.groups[0].group_end is GroupEnd.ON_FAILURE_STOP_ALL
    assert cfg.groups[1].group_end is GroupEnd.ON_FAILURE_FINISH_ACTIVE


def test_build_group_specs(tmp_path):
    cfg = ConfigurationLoader(_write(tmp_path, CONFIG)).load_configuration()
    specs = build_group_specs(cfg)
    assert [s.name for s in specs] == ["smoke", "full"]
    alpha, beta = specs[0].tasks
    assert (alpha.subdir, alpha.task_id, alpha.options) == ("alpha", "main", ("fast",))
    assert alpha.description == "alpha/main [fast]"
    assert alpha.metadata == {"owner": "ci"}
    assert beta.description == "beta benchmarks"
    assert [s.name for s in build_group_specs(cfg, only=["full"])] == ["full"]
    with pytest.raises(ConfigurationError):
        build_group_specs(cfg, only=["nightly"])


def test_build_spawner(tmp_path):
    cfg = ConfigurationLoader(_write(tmp_path, CONFIG)).load_configuration()
    sp = build_spawner(cfg.spawner)
    assert isinstance(sp, CommandSpawner)
    assert sp.env == {"RUST_BACKTRACE": "1"}
    cargo_cfg = ConfigurationLoader(_write(tmp_path, "spawner: {type: cargo, profile: release}\n")).load_configuration()
    cargo = build_spawner(cargo_cfg.spawner)
    assert isinstance(cargo, CargoSpawner) and cargo.profile == "release"


@pytest.mark.parametrize(
    "text",
    [
        "spawner: {type: command}\n",
        "spawner: {type: docker, command: [x]}\n",
        "poll_interval: 0\nspawner: {type: cargo}\n",
        "spawner: {type: cargo}\ngroups: [{name: a}, {name: a}]\n",
        "spawner: {type: cargo}\ngroups: [{name: a, group_end: whenever}]\n",
        "spawner: {type: cargo}\ngroups: [{name: a, tasks: [{subdir: ' ', task: main}]}]\n",
        "- just\n- a list\n",
        "spawner: [unclosed\n",
    ],
)
def test_invalid_configuration(tmp_path, text):
    with pytest.raises(ConfigurationError):
        ConfigurationLoader(_write(tmp_path, text)).load_configuration()


def test_missing_configuration_file(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigurationLoader(tmp_path / "absent.yaml").load_configuration()
