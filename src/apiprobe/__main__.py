from apiprobe.cli import main

raise SystemExit(main())
