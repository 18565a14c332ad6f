from toolkit.services.apps_script import AppsScriptClient, AppsScriptConfig
from toolkit.services.duplicates import DuplicateResolver, find_duplicates, select_survivor
from toolkit.services.summary_generator import SummaryGenerator
from toolkit.services.sync_engine import SyncEngine

__all__ = [
	"AppsScriptClient",
	"AppsScriptConfig",
	"DuplicateResolver",
	"SummaryGenerator",
	"SyncEngine",
	"find_duplicates",
	"select_survivor",
]
