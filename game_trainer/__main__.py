from game_trainer.cli import main

raise SystemExit(main())
