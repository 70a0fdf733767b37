from svg_visual_compare.cli import app


if __name__ == "__main__":
    app(prog_name="svg-visual-compare")
