from mdemit.cli import main

raise SystemExit(main())
