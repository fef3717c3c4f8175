from presubmitctl.cli import main

main()
