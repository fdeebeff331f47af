import copy
import json

import pytest

from cbeta_p5a.etl.gaiji_map import GaijiResolver

GAIJI = {
    # 有 Unicode（Ext B）
    "CB00178": {"uni_char": "𠮷", "norm_uni_char": "吉", "composition": "[土/口]"},
    # 无 Unicode，只有通用字与组字式
    "CB00001": {"norm_uni_char": "吉", "norm_big5_char": "吉", "composition": "[士/口]"},
    # Unicode 位于 Ext C 以后
    "CB12345": {"uni_char": "\U0002A700", "norm_uni_char": "丁", "composition": "[一/亅]"},
    # 只有组字式
    "CB00002": {"composition": "[金*本]"},
    "SD-A5A9": {"romanized": "a"},
    "RJ-C0E0": {"romanized": "ka"},
}


@pytest.fixture
def gaiji_map():
    return copy.deepcopy(GAIJI)


@pytest.fixture
def gaiji(gaiji_map):
    return GaijiResolver(gaiji_map=gaiji_map)


@pytest.fixture
def gaiji_path(tmp_path, gaiji_map):
    path = tmp_path / "cbeta_gaiji.json"
    path.write_text(json.dumps(gaiji_map, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def xml_root(tmp_path):
    root = tmp_path / "xml"
    root.mkdir()
    return root
