"""Tests for the parcel-priority command line."""

import json

import pandas as pd
import pytest

from parcel_priority.main import build_parser, main


@pytest.fixture
def data_dir(tmp_path):
    pd.DataFrame(
        {"Parcel ID": ["56.200-3-14"], "IA": [1], "Pools": [2], "Cores": [1]}
    ).to_csv(tmp_path / "appx.a.parcelscorehabitats.csv", index=False)
    return tmp_path


class TestCli:
    def test_parcel_id_prints_json(self, data_dir, capsys):
        exit_code = main(["--parcel-id", "56.200-3-14", "--data-dir", str(data_dir)])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["parcelId"] == "56.200-3-14"
        assert output["categories"][0]["category"] == "Wildlife Habitat"
        assert output["categories"][0]["rawScore"] == 4

    def test_unknown_parcel_id(self, data_dir, capsys):
        main(["--parcel-id", "non-existent-parcel", "--data-dir", str(data_dir)])

        output = json.loads(capsys.readouterr().out)
        assert output["compositeScore"] == 0
        assert output["categories"] == []

    def test_csv_export(self, data_dir, tmp_path, capsys):
        csv_path = tmp_path / "export" / "breakdown.csv"

        main(["--parcel-id", "56.200-3-14", "--data-dir", str(data_dir), "--csv", str(csv_path)])

        assert csv_path.exists()
        assert "tabular-pools" in set(pd.read_csv(csv_path)["criterion_id"])

    def test_targets_are_mutually_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--parcel-id", "x", "--lat", "41.8"])

    def test_lat_requires_lon(self):
        with pytest.raises(SystemExit):
            main(["--lat", "41.8"])
