import asyncio
import functools
import time

import discord
from discord.ext import commands
from config.defaults import data_dir
from config.defaults import db_path
from config.defaults import source_dir
from config.defaults import update_repo
from config.env import load_credentials
from config.env import validate_credentials
from config.manager import ConfigManager
from config.manager import config_metas_from_manifests
from db.migrate import init_db
from framework.commands import register_module_commands
from framework.data import DataManager
from framework.events import EventDispatcher
from framework.loader import ModuleLoader
from framework.loader import apply_intents
from framework.loader import collect_required_intents
from framework.registry import ModuleRegistry
from misc.discord_gates import make_is_dev
from misc.runtime_deps import FrameworkServices
from misc.runtime_wiring import wire_bot_runtime
from panels.manager import PanelManager
from safety.state import SafetyPaths
from settings.discovery import SettingsDiscovery
from settings.storage import SettingsStore
from updater.github import check_for_updates
from updater.local import current_version

STARTED_AT = time.time()

DATA_DIR = data_dir()
SOURCE_DIR = source_dir()

# -------------------------
# Credentials
# -------------------------
CREDENTIALS = load_credentials(DATA_DIR)
_creds_ok, _missing, _reason = validate_credentials(CREDENTIALS)
if not _creds_ok:
    print(f"[CFG] {_reason}")
    raise SystemExit(1)


def _parse_guild_id(raw) -> int | None:
    try:
        return int(raw) if raw else None
    except ValueError:
        print(f"[CFG] Ignoring non-numeric guild id: {raw!r}")
        return None


DISCORD_TOKEN = CREDENTIALS["DISCORD_TOKEN"]
TEST_GUILD_ID = _parse_guild_id(CREDENTIALS.get("GUILD_ID"))
MAIN_GUILD_ID = _parse_guild_id(CREDENTIALS.get("MAIN_GUILD_ID")) or TEST_GUILD_ID

# -------------------------
# Config
# -------------------------
config = ConfigManager(DATA_DIR)
config.ensure_config_populated()

TEST_MODE = bool(config.get_config_property("testMode"))
ITEMS_PER_PAGE = int(config.get_config_property("adminPanel.itemsPerPage") or 10)
BUTTON_TIMEOUT_SECONDS = float(config.get_config_property("interaction.buttonTimeoutMs") or 900000) / 1000.0
UPDATE_REPO = update_repo()
BOT_VERSION = current_version(SOURCE_DIR)

print(
    f"[CFG] version={BOT_VERSION} data_dir={DATA_DIR} source_dir={SOURCE_DIR} "
    f"test_mode={TEST_MODE} test_guild={TEST_GUILD_ID} main_guild={MAIN_GUILD_ID} devs={len(config.devs())}"
)

# -------------------------
# Database
# -------------------------
DB_PATH = db_path()
db_conn = init_db(DB_PATH)
db_lock = asyncio.Lock()
print(f"[DB] Using {DB_PATH}")

# -------------------------
# Modules
# -------------------------
registry = ModuleRegistry()
loader = ModuleLoader(SOURCE_DIR, registry)
modules = loader.load_all()
config.register_config_files(config_metas_from_manifests(loader.manifests))

intents = discord.Intents.default()
unknown_intents = apply_intents(intents, collect_required_intents(modules))
if unknown_intents:
    print(f"[CFG] Unknown intents requested by modules: {', '.join(unknown_intents)}")

bot = commands.Bot(command_prefix=commands.when_mentioned, intents=intents)
is_dev = make_is_dev(config.devs)

panels = PanelManager(
    is_dev=is_dev,
    main_guild_id=MAIN_GUILD_ID,
    db_lock=db_lock,
    db_conn=db_conn,
    items_per_page=ITEMS_PER_PAGE,
    button_timeout=BUTTON_TIMEOUT_SECONDS,
)

bot.services = FrameworkServices(
    config=config,
    data=DataManager(DATA_DIR),
    settings=SettingsStore(DATA_DIR, SettingsDiscovery(SOURCE_DIR)),
    registry=registry,
    panels=panels,
)

wire_bot_runtime(
    bot,
    db_lock=db_lock,
    db_conn=db_conn,
    panels=panels,
    registry=registry,
    paths=SafetyPaths.from_env(),
    is_dev=is_dev,
    test_guild_id=TEST_GUILD_ID,
    main_guild_id=MAIN_GUILD_ID,
    check_updates=functools.partial(check_for_updates, UPDATE_REPO, BOT_VERSION),
    started_at=STARTED_AT,
)

print(f"[Panels] Registered {panels.register_modules(modules)} module panels")
register_module_commands(bot, modules, is_dev=is_dev, test_mode=TEST_MODE, test_guild_id=TEST_GUILD_ID)

dispatcher = EventDispatcher()
dispatcher.add_modules(modules)
dispatcher.attach(bot)
print(f"[Events] Listening for: {', '.join(dispatcher.event_names()) or 'none'}")


bot.run(DISCORD_TOKEN)
