import argparse

from backend.app.core.config import settings
from backend.app.core.errors import InvalidMove
from backend.app.core.storage import JsonFileStore
from backend.app.engine.game import ConnectFour
from backend.app.engine.ai import ConnectFourAI, NO_MOVE
from backend.app.engine.learning import LearningStore

def main():
    parser = argparse.ArgumentParser(description="Play Connect Four against the heuristic AI")
    parser.add_argument("--difficulty", choices=["easy", "medium", "hard"], default="medium")
    args = parser.parse_args()

    print("=======================================")
    print(f"   CONNECT FOUR: Human vs AI ({args.difficulty})")
    print("=======================================")

    game = ConnectFour()

    # The AI remembers how it lost, across runs
    learning_store = LearningStore.from_settings(settings.learning, JsonFileStore(settings.storage.directory)).load()
    stats = learning_store.stats()
    print(f"AI memory: {stats['patterns_learned']} patterns from {stats['total_games']} lost games")

    # Configure AI as Player 2
    ai_agent = ConnectFourAI.from_settings(settings.ai, args.difficulty, learning_store, player_id=2)

    print(game.get_visual_board())

    while not game.is_game_over:

        # --- Human Turn (Player 1) ---
        if game.current_turn == 1:
            valid_moves = game.get_valid_moves()
            try:
                user_input = input(f"\nYour Move (Columns {valid_moves}): ")
                game.drop_piece(int(user_input))
            except InvalidMove as e:
                print(f"Invalid column ({e.reason}). Try again.")
                continue
            except ValueError:
                print("Please enter a valid number.")
                continue

        # --- AI Turn (Player 2) ---
        else:
            print("\nAI is thinking...")
            decision = ai_agent.decide(game.board, game.moves_of(1))
            if decision.column == NO_MOVE:
                break

            print(f"AI Reasoning: {decision.reasoning}")
            print(f"AI plays Column: {decision.column}")
            game.drop_piece(decision.column)

        # Show Board
        print("\n" + game.get_visual_board())

    # --- End Game ---
    if game.winner:
        if game.winner == 1:
            learning_store.record_loss(game.moves_of(1), args.difficulty)
            print("\nGame Over! You win. The AI will remember this one.")
        else:
            print("\nGame Over! The AI wins.")
    else:
        print("\nGame Over! It's a Draw.")

if __name__ == "__main__":
    main()
