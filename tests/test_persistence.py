"""
Test JsonFieldStore

File-backed field store used by the API server and the console harness.
"""

import json

import pytest

from order_config.contracts import Target
from order_config.persistence import JsonFieldStore

TARGET = Target(table_id='tbl1', record_id='rec1')


@pytest.fixture
def store(tmp_path):
    return JsonFieldStore(str(tmp_path / "field_store"))


def test_base_dir_created(tmp_path):
    JsonFieldStore(str(tmp_path / "nested" / "store"))

    assert (tmp_path / "nested" / "store").is_dir()


def test_read_missing_table(store):
    assert store.read_tokens(TARGET) is None


def test_write_then_read(store):
    store.write_tokens(TARGET, ['首单', '需要打板', '需要面料测试'])

    assert store.read_tokens(TARGET) == ['首单', '需要打板', '需要面料测试']


def test_file_layout(store):
    store.write_tokens(TARGET, ['翻单'])
    store.write_tokens(Target('tbl1', 'rec2'), ['首单'])

    path = store.base_dir / "TABLE-tbl1.json"
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    assert data == {'rec1': ['翻单'], 'rec2': ['首单']}
    # Tokens stored as readable text
    assert '翻单' in path.read_text(encoding='utf-8')


def test_tables_are_separate(store):
    store.write_tokens(TARGET, ['翻单'])

    assert store.read_tokens(Target('tbl2', 'rec1')) is None


def test_write_none_clears_field(store):
    store.write_tokens(TARGET, ['翻单'])

    store.write_tokens(TARGET, None)

    assert store.read_tokens(TARGET) is None


def test_write_empty_list_clears_field(store):
    store.write_tokens(TARGET, ['翻单'])

    store.write_tokens(TARGET, [])

    assert store.read_tokens(TARGET) is None


def test_write_without_target(store):
    with pytest.raises(ValueError):
        store.write_tokens(None, ['翻单'])


def test_non_list_value_ignored(store):
    path = store.base_dir / "TABLE-tbl1.json"
    path.write_text(json.dumps({'rec1': '首单,需要打板'}), encoding='utf-8')

    assert store.read_tokens(TARGET) is None


def test_corrupt_table_file(store):
    path = store.base_dir / "TABLE-tbl1.json"
    path.write_text(json.dumps(['rec1']), encoding='utf-8')

    with pytest.raises(ValueError, match="Corrupt field store file"):
        store.read_tokens(TARGET)
