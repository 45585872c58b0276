"""Tests for the command line interface."""
import json

import pytest

from colortrace.cli import build_config, create_parser, main

from conftest import make_canvas


class TestParser:
    """Test argument parsing and config building."""

    def test_defaults(self):
        """Test that unset flags keep config defaults."""
        config = build_config(create_parser().parse_args(["in.png"]))
        assert config.mode == "color"
        assert config.color_size == 5
        assert config.optcurve
        assert config.kmeans_use_lab_color

    def test_overrides(self):
        """Test that flags override config values."""
        args = create_parser().parse_args([
            "in.png", "--mode", "black", "--colors", "3", "--turdsize", "0",
            "--no-optcurve", "--rgb", "--seed", "4", "--remove-background",
        ])
        config = build_config(args)
        assert config.mode == "black"
        assert config.color_size == 3
        assert config.turdsize == 0
        assert not config.optcurve
        assert not config.kmeans_use_lab_color
        assert config.random_seed == 4
        assert config.remove_background

    def test_config_file(self, tmp_path):
        """Test that a JSON config is loaded and flags win over it."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"color_size": 7, "alphamax": 0.5}))
        args = create_parser().parse_args(["in.png", "--config", str(path), "--colors", "2"])
        config = build_config(args)
        assert config.color_size == 2
        assert config.alphamax == 0.5

    def test_bad_choice(self):
        """Test that argparse rejects unknown choices."""
        with pytest.raises(SystemExit) as excinfo:
            create_parser().parse_args(["in.png", "--mode", "sepia"])
        assert excinfo.value.code == 2


class TestMain:
    """Test the entry point."""

    def test_converts_image(self, save_png, two_color_image, tmp_path, capsys):
        """Test a successful run writes the SVG."""
        output = tmp_path / "result.svg"
        code = main([str(save_png(two_color_image)), "-o", str(output), "--seed", "1"])

        assert code == 0
        assert output.read_text(encoding="utf-8").startswith("<?xml")
        assert "Saved:" in capsys.readouterr().out

    def test_default_output_path(self, save_png, two_color_image, tmp_path):
        """Test that the output defaults to the input name with .svg."""
        input_path = save_png(two_color_image, "drawing.png")
        assert main([str(input_path), "--mode", "black"]) == 0
        assert (tmp_path / "drawing.svg").exists()

    def test_missing_input(self, tmp_path, capsys):
        """Test that a missing input fails."""
        assert main([str(tmp_path / "missing.png")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_bad_config(self, save_png, two_color_image, tmp_path, capsys):
        """Test that unknown config keys fail cleanly."""
        config_path = tmp_path / "bad.json"
        config_path.write_text(json.dumps({"colour_size": 3}))
        code = main([str(save_png(two_color_image)), "--config", str(config_path)])
        assert code == 1
        assert "colour_size" in capsys.readouterr().err

    def test_blank_image(self, save_png, capsys):
        """Test that an image without content fails."""
        assert main([str(save_png(make_canvas(10, 10)))]) == 1
        assert "NO_TRACEABLE_CONTENT" in capsys.readouterr().err
