from __future__ import annotations

import asyncio
import sys

from caveminer.config import load_config, resolve_save_path
from caveminer.engine import Engine
from caveminer.persistence import PersistenceCoordinator
from caveminer.save import JsonFileStore
from caveminer.timers import SystemClock

FRAME_SECONDS = 1.0 / 60.0
STATUS_INTERVAL = 5.0


async def main(run_seconds: float | None = None) -> None:
    config = load_config()
    save_path = resolve_save_path(config)
    store = JsonFileStore(save_path.parent)
    persistence = PersistenceCoordinator(
        store,
        storage_key=save_path.stem,
        remote_timeout=config.load_timeout,
    )
    clock = SystemClock()
    engine = Engine(persistence, config=config, clock=clock)

    await engine.start()
    if engine.last_offline is not None:
        print(f"Welcome back! You were away {engine.last_offline.seconds}s "
              f"and earned {engine.last_offline.amount:.0f} coins.")

    started = clock.now()
    last_status = started
    try:
        while True:
            now = clock.now()
            if run_seconds is not None and now - started >= run_seconds:
                break
            await engine.update()

            if now - last_status >= STATUS_INTERVAL:
                s = engine.state
                print(f"coins={engine.income.display_value():.0f} cps={s.cps:.1f} "
                      f"cpc={s.cpc:.1f} gold={s.gold_coins:.0f} rebirths={s.rebirths}")
                last_status = now

            await asyncio.sleep(FRAME_SECONDS)
    except KeyboardInterrupt:
        pass
    finally:
        await engine.shutdown()


if __name__ == "__main__":
    seconds = float(sys.argv[1]) if len(sys.argv) > 1 else None
    asyncio.run(main(seconds))
