"""Tests for configs/config.json handling."""

import json

from gains_ledger.utils.config import DEFAULT_CONFIG, _deep_merge, load_config


def test_missing_file_writes_defaults(tmp_path):
    config_file = tmp_path / 'configs' / 'config.json'
    config = load_config(config_file)
    assert config == DEFAULT_CONFIG
    assert json.loads(config_file.read_text()) == DEFAULT_CONFIG


def test_user_values_merge_over_defaults(tmp_path):
    config_file = tmp_path / 'config.json'
    config_file.write_text(json.dumps({'accounting': {'method': 'HIFO'}, 'custom': 1}))

    config = load_config(config_file)

    assert config['accounting']['method'] == 'HIFO'
    assert config['accounting']['include_fees_in_basis'] is True
    assert config['custom'] == 1
    assert json.loads(config_file.read_text())['import']['date_format'] == 'MM/DD/YYYY'


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    config_file = tmp_path / 'config.json'
    config_file.write_text('{not json')
    assert load_config(config_file) == DEFAULT_CONFIG
    assert config_file.read_text() == '{not json'


def test_non_object_json_falls_back_to_defaults(tmp_path):
    config_file = tmp_path / 'config.json'
    config_file.write_text('[1, 2]')
    assert load_config(config_file) == DEFAULT_CONFIG


def test_deep_merge_does_not_mutate_defaults():
    defaults = {'a': {'b': 1, 'c': 2}}
    merged = _deep_merge(defaults, {'a': {'b': 5}})
    assert merged == {'a': {'b': 5, 'c': 2}}
    assert defaults == {'a': {'b': 1, 'c': 2}}
