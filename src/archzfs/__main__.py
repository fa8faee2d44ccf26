from archzfs.cli import main

raise SystemExit(main())
