import json

from click.testing import CliRunner

from tabpilot.cli import main


class TestShowState:
	def test_prints_persisted_record(self, tmp_path):
		(tmp_path / 'tabState_3.json').write_text(json.dumps({'status': 'idle', 'logs': [{'level': 'info', 'message': 'Execution completed'}]}))

		result = CliRunner().invoke(main, ['show-state', '3', '--state-dir', str(tmp_path)])

		assert result.exit_code == 0
		assert json.loads(result.output)['logs'][0]['message'] == 'Execution completed'

	def test_missing_record(self, tmp_path):
		result = CliRunner().invoke(main, ['show-state', '4', '--state-dir', str(tmp_path)])

		assert result.exit_code == 1
		assert 'No state stored for tab 4' in result.output

	def test_run_requires_goal(self):
		result = CliRunner().invoke(main, ['run'])

		assert result.exit_code == 2
		assert 'GOAL' in result.output
