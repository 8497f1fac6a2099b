from hostopt.cli import main

if __name__ == "__main__":
    main()
