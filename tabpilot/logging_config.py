import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from tabpilot.config import CONFIG

# between WARNING and ERROR: run outcomes still show when only failures are wanted
RESULT_LEVEL = 35


def addLoggingLevel(levelName, levelNum, methodName=None):
	"""
	Register `levelName` as a logging level and give loggers a `methodName` method for it
	(`levelName.lower()` by default), so that `logging.getLogger(...).result(msg)` works.

	Raises AttributeError when the level or method name is already taken.
	"""
	methodName = methodName or levelName.lower()

	for owner, name in ((logging, levelName), (logging, methodName), (logging.getLoggerClass(), methodName)):
		if hasattr(owner, name):
			raise AttributeError(f'{name} already defined in {getattr(owner, "__name__", owner)}')

	def logForLevel(self, message, *args, **kwargs):
		if self.isEnabledFor(levelNum):
			self._log(levelNum, message, args, **kwargs)

	def logToRoot(message, *args, **kwargs):
		logging.log(levelNum, message, *args, **kwargs)

	logging.addLevelName(levelNum, levelName)
	setattr(logging, levelName, levelNum)
	setattr(logging.getLoggerClass(), methodName, logForLevel)
	setattr(logging, methodName, logToRoot)


def setup_logging():
	"""
	Configure the `tabpilot` logger from TABPILOT_LOGGING_LEVEL (debug, info or result).

	`result` mode prints bare messages and only run outcomes and failures. When the host
	application already configured logging, only the RESULT level is registered.
	"""
	if not hasattr(logging, 'RESULT'):
		addLoggingLevel('RESULT', RESULT_LEVEL)

	if logging.getLogger().hasHandlers():
		return logging.getLogger('tabpilot')

	log_type = CONFIG.TABPILOT_LOGGING_LEVEL
	level = {'result': RESULT_LEVEL, 'debug': logging.DEBUG}.get(log_type, logging.INFO)

	console = logging.StreamHandler(sys.stdout)
	console.setLevel(level)
	if log_type == 'result':
		console.setFormatter(logging.Formatter('%(message)s'))
	else:
		console.setFormatter(logging.Formatter('%(levelname)-8s [%(name)s] %(message)s'))

	root = logging.getLogger()
	root.handlers = [console]
	root.setLevel(level)

	tabpilot_logger = logging.getLogger('tabpilot')
	tabpilot_logger.propagate = False
	tabpilot_logger.addHandler(console)
	tabpilot_logger.setLevel(level)

	# chatty third-party loggers only report real errors
	for logger_name in ('httpx', 'httpcore', 'playwright', 'asyncio', 'bubus', 'charset_normalizer'):
		third_party = logging.getLogger(logger_name)
		third_party.setLevel(logging.ERROR)
		third_party.propagate = False

	return tabpilot_logger
