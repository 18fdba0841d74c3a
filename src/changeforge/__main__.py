from changeforge.cli import main

raise SystemExit(main())
