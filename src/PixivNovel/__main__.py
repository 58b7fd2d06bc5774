from PixivNovel.cli import main

main()
