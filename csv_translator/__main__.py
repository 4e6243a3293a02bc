from .translate_csv import main

raise SystemExit(main())
