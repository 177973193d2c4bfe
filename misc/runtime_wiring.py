from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_core import register as register_core
from misc.commands.commands_system import register as register_system
from misc.events_runtime import register_runtime_events
from misc.internal_panels import build_internal_panels
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    db_lock,
    db_conn,
    panels,
    registry,
    paths,
    is_dev,
    test_guild_id: int | None,
    main_guild_id: int | None,
    check_updates,
    started_at: float,
) -> list[str]:
    """Register the framework's own panels, commands and listeners. Returns the internal command names."""
    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        started_at=started_at,
        panels=panels,
        registry=registry,
        paths=paths,
        check_updates=check_updates,
    )
    command_gates = CommandGates(
        is_dev=is_dev,
        test_guild_id=test_guild_id,
        main_guild_id=main_guild_id,
    )

    for panel in build_internal_panels(command_deps):
        panels.register(panel)

    registered = register_core(
        bot,
        deps=command_deps,
        gates=command_gates,
    )
    registered += register_system(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            db_lock=db_lock,
            db_conn=db_conn,
            panels=panels,
            test_guild_id=test_guild_id,
        ),
    )
    print(f"[Runtime] Internal commands: {', '.join('/' + name for name in registered)}")
    return registered
