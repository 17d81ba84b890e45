"""Stack module deploying a git checkout of tapkick."""

from dreadnot.lib.process import spawn, task_spawn


def _repo_dir(stack):
    return stack.stack_config.tapkick_dir


async def get_deployed_revision(stack, args):
    result = await spawn(["git", "rev-parse", "HEAD"], cwd=_repo_dir(stack))
    return result.stdout.strip()


async def get_latest_revision(stack, args):
    tip = getattr(stack.stack_config, "tip", "master")
    result = await spawn(["git", "ls-remote", "origin", tip], cwd=_repo_dir(stack))
    return result.stdout.split()[0] if result.stdout else None


async def task_deploy(stack, baton, args):
    cwd = _repo_dir(stack)
    await task_spawn(baton, args, ["git", "fetch"], cwd=cwd)
    await task_spawn(baton, args, ["git", "checkout", args.revision], cwd=cwd)


def task_cleanup(stack, baton, args):
    baton.log.info("This gets logged whether the deploy succeeds or fails")


targets = {
    "deploy": ["task_deploy"],
    "finally": ["task_cleanup"],
}
