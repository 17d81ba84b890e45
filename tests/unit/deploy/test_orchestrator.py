"""Unit tests for the Dreadnot orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from dreadnot.deploy.module import StackModule
from dreadnot.deploy.orchestrator import Dreadnot
from dreadnot.lib.errors import ConfigError, NotFoundError
from dreadnot.models.config import DreadnotConfig, StackConfig
from dreadnot.models.deployment import Deployment


class TestDreadnotSetup:
    """Tests for construction and init."""

    @pytest.mark.asyncio
    async def test_init_creates_data_and_region_directories(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
        temp_dir: Path,
    ) -> None:
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})

        await dreadnot.init()

        assert (temp_dir / "data" / "logs" / "tapkick" / "ord").is_dir()
        assert (temp_dir / "data" / "logs" / "tapkick" / "dfw").is_dir()
        assert dreadnot.warning == ""

    def test_stack_modules_load_from_stacks_dir(
        self, make_config: Callable[..., DreadnotConfig], temp_dir: Path
    ) -> None:
        stacks_dir = temp_dir / "stacks"
        stacks_dir.mkdir()
        (stacks_dir / "tapkick_v2.py").write_text(
            "def task_deploy(stack, baton, args):\n    pass\n"
        )
        config = make_config(
            tapkick=StackConfig(regions=["ord"], module_name="tapkick_v2")
        )

        dreadnot = Dreadnot(config)

        assert dreadnot.get_stack("tapkick").module.name == "tapkick_v2"

    def test_missing_stack_module_is_a_config_error(
        self, make_config: Callable[..., DreadnotConfig]
    ) -> None:
        with pytest.raises(ConfigError):
            Dreadnot(make_config())

    def test_unknown_stack(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
    ) -> None:
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})

        with pytest.raises(NotFoundError, match="Stack not found"):
            dreadnot.get_stack("nope")


class TestWarning:
    """Tests for the maintenance warning banner."""

    @pytest.mark.asyncio
    async def test_warning_is_persisted_and_reloaded(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
        temp_dir: Path,
    ) -> None:
        config = make_config()
        dreadnot = Dreadnot(config, modules={"tapkick": build_module()})
        await dreadnot.init()

        await dreadnot.set_warning("Deploys frozen")

        assert (temp_dir / "data" / "warning.txt").read_text() == "Deploys frozen"
        assert dreadnot.get_summary().warning == "Deploys frozen"

        restarted = Dreadnot(config, modules={"tapkick": build_module()})
        await restarted.init()
        assert restarted.warning == "Deploys frozen"

    @pytest.mark.asyncio
    async def test_empty_text_clears_warning(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
    ) -> None:
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})
        await dreadnot.init()
        await dreadnot.set_warning("Deploys frozen")

        await dreadnot.set_warning("")

        assert dreadnot.warning == ""
        assert dreadnot.warning_path.read_text() == ""

    @pytest.mark.asyncio
    async def test_warning_file_is_trimmed_on_load(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
        temp_dir: Path,
    ) -> None:
        (temp_dir / "data").mkdir()
        (temp_dir / "data" / "warning.txt").write_text("  Release day\n")
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})

        await dreadnot.init()

        assert dreadnot.warning == "Release day"


class TestSummaries:
    @pytest.mark.asyncio
    async def test_summary_reports_title_and_environment(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
    ) -> None:
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})
        await dreadnot.init()

        summary = dreadnot.get_summary()

        assert summary.title == "Dreadnot"
        assert summary.name == "production"

    @pytest.mark.asyncio
    async def test_stack_and_region_summaries(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
    ) -> None:
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})
        await dreadnot.init()

        stacks = await dreadnot.get_stack_summaries()
        regions = await dreadnot.get_region_summaries("tapkick")

        assert [s.name for s in stacks] == ["tapkick"]
        assert [r.name for r in regions] == ["ord", "dfw"]
        assert [s.running for s in dreadnot.running_status()] == [False]

    @pytest.mark.asyncio
    async def test_lock_and_unlock_delegate_to_registry(
        self,
        make_config: Callable[..., DreadnotConfig],
        build_module: Callable[..., StackModule],
        make_deployment: Callable[..., Deployment],
    ) -> None:
        dreadnot = Dreadnot(make_config(), modules={"tapkick": build_module()})

        dreadnot.lock(["maintenance"], make_deployment().summary())
        assert "maintenance" in dreadnot.locks

        dreadnot.unlock(["maintenance"])
        assert "maintenance" not in dreadnot.locks
