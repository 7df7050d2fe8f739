from typing import TYPE_CHECKING

from tabpilot.browser.views import TabInfo

if TYPE_CHECKING:
	from tabpilot.browser.service import TabHost

# TabHost pulls in Playwright, so it is only imported on first use
_LAZY_IMPORTS = {
	'TabHost': ('.service', 'TabHost'),
}


def __getattr__(name: str):
	if name in _LAZY_IMPORTS:
		module_path, attr_name = _LAZY_IMPORTS[name]
		from importlib import import_module

		full_module_path = f'tabpilot.browser{module_path}'
		try:
			module = import_module(full_module_path)
		except ImportError as e:
			raise ImportError(f'Failed to import {name} from {full_module_path}: {e}') from e
		attr = getattr(module, attr_name)
		globals()[name] = attr
		return attr

	raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = ['TabHost', 'TabInfo']
