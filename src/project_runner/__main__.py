from project_runner.cli import main

raise SystemExit(main())
