import sys
import runpy

# debugpy puts the real arguments after "--"
if "--" in sys.argv:
    args = sys.argv[sys.argv.index("--") + 1 :]
else:
    args = sys.argv[1:]

# give Typer a clean argv
sys.argv = ["pyautopilot"] + args

# same as: python -m pyautopilot ...
runpy.run_module("pyautopilot", run_name="__main__")
